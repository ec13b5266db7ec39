import pytest
from django.test import SimpleTestCase, TransactionTestCase


@pytest.fixture(autouse=True)
def _simple_testcase_db_connection(request):
    # Django's test runner sets up the test database before every test, and
    # SimpleTestCase only rejects queries. pytest-django additionally blocks
    # opening a connection, which trips channels' close_old_connections() in
    # consumer tests. Match Django's runner here; queries stay blocked by
    # SimpleTestCase itself.
    cls = request.cls
    if cls is None or not issubclass(cls, SimpleTestCase) or issubclass(cls, TransactionTestCase):
        yield
        return
    request.getfixturevalue("django_db_setup")
    with request.getfixturevalue("django_db_blocker").unblock():
        yield
