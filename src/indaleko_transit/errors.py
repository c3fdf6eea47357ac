"""
Error taxonomy for Indaleko Transit.

Every error raised by the package derives from TransitError so callers
can catch the whole family in one place when they need to.
"""


class TransitError(Exception):
    """Base class for all Indaleko Transit errors."""


class ConfigurationError(TransitError):
    """
    Invalid encryption policy or configuration.

    Raised while a model class is being defined (or while configuration is
    loaded), never while records are loaded or saved.
    """


class CryptoServiceError(TransitError):
    """
    A call to the transit encryption service failed.

    Covers network failures, authentication failures, unknown keys and
    ciphertext the service refuses to decrypt.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class SerializationError(TransitError):
    """A serializer failed to encode or decode an attribute value."""


class StoreError(TransitError):
    """The record store failed to read or persist a record."""


class RecordNotFound(StoreError):
    """The requested record does not exist in the record store."""
