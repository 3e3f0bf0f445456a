"""
Error taxonomy for report server operations.

- ServiceConnectionError: the report server cannot be reached or rejects the credentials.
  Aborts a listing or connection check. Inside a batch only a credential
  rejection aborts; a timeout or reset on one item is recorded for that item.
- ProtocolError: the server answered but reported a SOAP fault, or the response
  could not be parsed.
- DocumentError: an RDL document is not well-formed XML.
- ItemError: a single batch item failed. Recorded in the batch outcome, never
  raised past the item boundary.
"""

from typing import Optional

CREDENTIAL_REJECTED_STATUSES = (401, 403)


class MigratorError(Exception):
    """Base exception for all report migration errors."""
    pass


class ServiceConnectionError(MigratorError):
    """Raised when the report server is unreachable or authentication fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def credentials_rejected(self) -> bool:
        """True when the server answered 401/403, as opposed to a network failure."""
        return self.status_code in CREDENTIAL_REJECTED_STATUSES


class ProtocolError(MigratorError):
    """
    Raised when a SOAP call fails at the protocol level.

    Attributes:
        fault: Fault text extracted from the response (or the raw body)
        status_code: HTTP status code, if a response was received
    """

    def __init__(self, message: str, fault: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.fault = fault if fault is not None else message
        self.status_code = status_code


class DocumentError(MigratorError):
    """Raised when a report definition is not well-formed XML."""
    pass


class ItemError(MigratorError):
    """Wraps any failure of a single item inside a batch."""

    def __init__(self, item: str, cause: Exception):
        super().__init__(f"{item}: {cause}")
        self.item = item
        self.cause = cause
