"""
exceptions.py — Domain error taxonomy

Every error the sync, vault and chat layers raise on purpose derives from
VantageError and carries the HTTP status main.py maps it to.

Business Rules:
- ConfigurationError, NotConnectedError, TokenExpiredError and
  IntegrityError abort the operation and reach the caller
- RemoteFetchError is recovered inside pagination; it only escapes when the
  remote ledger is unavailable for the whole sync run
- RowWriteError is always recovered inside the sync loop; ActionParseError
  is recovered while parsing a reply and only surfaces (422) on apply
- InvalidUploadError / UploadTooLargeError reject a statement upload before
  any AI call is made

Called by: services/*, connectors/quickbooks.py, main.py (handlers)
"""


class VantageError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ConfigurationError(VantageError):
    """A required secret or setting is missing or malformed."""

    status_code = 500


class NotConnectedError(VantageError):
    """The company has no stored QuickBooks credentials."""

    status_code = 400


class TokenExpiredError(VantageError):
    """Stored access token is past expiry; the OAuth flow must be restarted."""

    status_code = 401


class IntegrityError(VantageError):
    """Ciphertext failed authentication: tampered, truncated, or wrong key."""

    status_code = 500


class RemoteFetchError(VantageError):
    status_code = 502


class RowWriteError(VantageError):
    status_code = 500


class ActionParseError(VantageError):
    status_code = 422


class InvalidUploadError(VantageError):
    """Uploaded file is empty or of an unsupported type."""

    status_code = 400


class UploadTooLargeError(InvalidUploadError):
    status_code = 413
