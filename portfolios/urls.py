from django.urls import path

from . import views

app_name = "portfolios"

urlpatterns = [
    path("portfolio/performance/", views.performance, name="performance"),
]
