"""Error taxonomy for Cognito JWT verification.

Every failure the verifier can produce has one ``ErrorKind`` and one exception
class. Stages inside the verifier raise; ``verify`` turns the exception into a
``Rejected`` result. Messages are safe to log: they never contain key material
or the token itself.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MISSING_HEADER = "MissingHeader"
    MALFORMED_TOKEN = "MalformedToken"
    UNSUPPORTED_ALGORITHM = "UnsupportedAlgorithm"
    UNKNOWN_KEY = "UnknownKey"
    INVALID_SIGNATURE = "InvalidSignature"
    MISSING_ISSUER = "MissingIssuer"
    INVALID_CLAIM = "InvalidClaim"
    CLAIM_PARSE_ERROR = "ClaimParseError"
    EXPIRED_TOKEN = "ExpiredToken"
    KEY_DECODE_ERROR = "KeyDecodeError"


class AuthError(Exception):
    """Base class for authentication-related errors."""

    kind: ErrorKind
    default_message = "authentication failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class AuthHeaderMissing(AuthError):
    kind = ErrorKind.MISSING_HEADER
    default_message = "auth header empty"


class MalformedToken(AuthError):
    kind = ErrorKind.MALFORMED_TOKEN
    default_message = "malformed token"


class UnsupportedAlgorithm(AuthError):
    kind = ErrorKind.UNSUPPORTED_ALGORITHM
    default_message = "unsupported signing algorithm"


class PublicKeyNotFound(AuthError):
    kind = ErrorKind.UNKNOWN_KEY
    default_message = "Public key not found in JWKS"


class SignatureVerificationFailed(AuthError):
    kind = ErrorKind.INVALID_SIGNATURE
    default_message = "Signature verification failed"


class MissingIssuer(AuthError):
    kind = ErrorKind.MISSING_ISSUER
    default_message = "token does not contain issuer"


class InvalidClaim(AuthError):
    kind = ErrorKind.INVALID_CLAIM

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"invalid claim: {field!r}")


class ClaimParseError(AuthError):
    kind = ErrorKind.CLAIM_PARSE_ERROR
    default_message = "cannot parse token exp"


class TokenExpired(AuthError):
    kind = ErrorKind.EXPIRED_TOKEN
    default_message = "Token is expired"


class KeyDecodeError(AuthError):
    """A single key record could not be turned into a public key."""

    kind = ErrorKind.KEY_DECODE_ERROR

    def __init__(self, kid: Optional[str], reason: str):
        self.kid = kid
        self.reason = reason
        super().__init__(f"cannot decode key {kid!r}: {reason}")
