"""
Payment gateway error kinds.

Every failure the Paysera codec produces carries one of four tags so
callers can branch on ``error.kind`` instead of walking a class tree.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of gateway error tags."""
    CONFIGURATION = "configuration"
    SIGNATURE = "signature"
    CALLBACK_DATA = "callback_data"
    UNCLASSIFIED = "unclassified"


class GatewayError(Exception):
    """
    Error raised by the Paysera codec.

    Attributes:
        kind: Tag identifying the failure class
        message: Human-readable description
    """

    kind: ErrorKind = ErrorKind.UNCLASSIFIED
    default_message = "Paysera gateway error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value}, message={self.message!r})"


class ConfigurationError(GatewayError):
    """Merchant project ID or password is missing or invalid."""
    kind = ErrorKind.CONFIGURATION
    default_message = "Invalid or missing Paysera configuration"


class SignatureError(GatewayError):
    """Callback signature did not match the merchant password."""
    kind = ErrorKind.SIGNATURE
    default_message = "Invalid callback signature"


class CallbackDataError(GatewayError):
    """Callback payload is malformed or missing required fields."""
    kind = ErrorKind.CALLBACK_DATA
    default_message = "Invalid callback data"
