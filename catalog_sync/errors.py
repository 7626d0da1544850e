"""Exceptions raised by the sync pipeline."""
from typing import Optional


class SyncError(RuntimeError):
    """Base class for sync failures."""


class VendorAPIError(SyncError):
    """Vendor API answered with a non-2xx status."""

    def __init__(self, status_code: int, offset: Optional[int] = None, message: str = ""):
        self.status_code = status_code
        self.offset = offset
        super().__init__(f"Vendor API returned {status_code} (offset={offset}) {message}".strip())


class MalformedPageError(SyncError):
    """A 2xx page whose body is not a usable search result."""


class TokenExchangeError(SyncError):
    """Client-credentials token exchange failed."""


class CountRetrievalError(SyncError):
    """The total record count could not be learned."""


class NoActiveCredentialsError(SyncError):
    """Every credential probe failed."""


class InsufficientQuotaError(SyncError):
    """Combined credential quota cannot cover the requested range."""


class RemediationExhaustedError(SyncError):
    """Too many offsets failed serial remediation."""


class SyncAbortedError(SyncError):
    """A credential slice failed and the run was aborted."""


class StoreWriteError(SyncError):
    """Bulk write to the catalog store failed."""

    def __init__(self, message: str, attempted_inserts: int = 0, attempted_updates: int = 0):
        self.attempted_inserts = attempted_inserts
        self.attempted_updates = attempted_updates
        super().__init__(
            f"{message} (attempted inserts={attempted_inserts}, updates={attempted_updates})"
        )


class PortalLoginError(SyncError):
    """Reporting portal login chain failed."""


class PortalSessionExpired(SyncError):
    """Reporting portal rejected the session (401)."""
