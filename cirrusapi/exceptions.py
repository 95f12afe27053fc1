"""
Cirrus API Exceptions

Error kinds raised by the ledger query core.
"""


class CirrusApiError(Exception):
    """Base exception for the Cirrus query service."""
    pass


class IntegrityViolation(CirrusApiError):
    """The ledger holds more records for a key than a consistent chain allows."""

    def __init__(self, kind: str, key: str, count: int):
        self.kind = kind
        self.key = key
        self.count = count
        super().__init__(f"expected at most one {kind} record for {key}, found {count}")


class StoreError(CirrusApiError):
    """The underlying store failed to execute an operation."""
    pass


class RetractionFailed(CirrusApiError):
    """
    One or more per-table deletions of a block retraction failed.

    Deleting an already retracted height is a no-op, so the caller can
    retry the whole retraction.
    """

    def __init__(self, height: int, failures: dict):
        self.height = height
        self.failures = failures
        tables = ", ".join(sorted(failures))
        super().__init__(f"retraction of block {height} failed for: {tables}")
