"""Browser integration for Keybridge.

Encrypted message channel with the browser extension and the URL to
credential matching that decides which entries are offered for a page.
"""


class BrowserError(Exception):
    """Base exception for browser integration errors."""
    pass


class InvalidKey(BrowserError):
    """Raised when a handshake key or nonce is not valid base64 of the right size."""
    pass


class DecryptionFailed(BrowserError):
    """Raised when an inbound message fails authentication."""
    pass


class NonceReuse(BrowserError):
    """Raised when a session is asked to encrypt twice under the same nonce."""
    pass


class InvalidUrl(BrowserError):
    """Raised by urls.require_valid for URLs that must not be matched."""
    pass


from .channel import SecureChannel, SessionState  # noqa: E402
from .matcher import CredentialMatcher  # noqa: E402
from .action import BrowserAction  # noqa: E402

__all__ = [
    'BrowserError',
    'InvalidKey',
    'DecryptionFailed',
    'NonceReuse',
    'InvalidUrl',
    'SecureChannel',
    'SessionState',
    'CredentialMatcher',
    'BrowserAction',
]
