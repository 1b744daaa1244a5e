"""
Typed failures raised at the seams between the blog components.

Everything the bootstrap, synchronizer and gateway can fail with derives from
`FolioError`, so the controller and session can handle them without catching
unrelated exceptions.
"""


class FolioError(Exception):
    """Base class for every failure raised by folio_blog."""


class ConfigurationError(FolioError):
    """Required backend configuration is missing or malformed."""


class AuthFailure(FolioError):
    """No identity could be established for this session."""


class ValidationError(FolioError):
    """A draft was rejected before reaching the store."""


class StoreError(FolioError):
    """The document store failed a subscription or a mutation."""


class NotReadyError(FolioError):
    """An operation was attempted before the identity was resolved."""
