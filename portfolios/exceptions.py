from __future__ import annotations


class InvalidInputError(ValueError):
    """Raised when an analytics call receives arguments it cannot compute with."""


class SnapshotStoreError(RuntimeError):
    """
    Raised when the snapshot store fails (connectivity, rejected writes).

    Absence of rows is never reported this way; callers get an empty result.
    """
