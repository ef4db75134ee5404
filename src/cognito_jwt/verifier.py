"""Cognito JWT verification pipeline.

``verify`` runs the stages below strictly in order and stops at the first
failure, so claims are never looked at before the signature has been checked:

    parse -> algorithm check -> key lookup -> signature -> claims -> Verified

Every stage raises an ``AuthError`` subclass; ``verify`` converts it into a
``Rejected`` result carrying the error kind. The key store is read-only, so
one store can serve any number of concurrent calls.
"""
import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from jose import jwk
from jose.exceptions import JWKError

from .claims import is_provider_issuer, validate_provider_claims
from .config import VerificationConfig
from .errors import (
    AuthError,
    AuthHeaderMissing,
    ErrorKind,
    InvalidClaim,
    MalformedToken,
    MissingIssuer,
    PublicKeyNotFound,
    SignatureVerificationFailed,
    UnsupportedAlgorithm,
)
from .keys import KeyStore, VerificationKey, decode_base64url

# Cognito user pools sign with RS256; the other RSA PKCS#1 digests are
# accepted. "none", HMAC and everything else are refused.
SUPPORTED_ALGORITHMS = frozenset({"RS256", "RS384", "RS512"})

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class RawToken:
    header: Dict[str, Any]
    claims: Dict[str, Any]
    signature: bytes
    signing_input: bytes


@dataclass(frozen=True)
class Verified:
    claims: Mapping[str, Any]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: ErrorKind
    error: AuthError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return self.error.message


VerificationResult = Union[Verified, Rejected]


def parse_token(token: str) -> RawToken:
    if not isinstance(token, str):
        raise MalformedToken("token is not a string")
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedToken("token must have three segments")
    header_segment, payload_segment, signature_segment = parts
    try:
        header = json.loads(decode_base64url(header_segment))
        claims = json.loads(decode_base64url(payload_segment))
        signature = decode_base64url(signature_segment)
    except (ValueError, RecursionError) as exc:
        raise MalformedToken() from exc
    if not isinstance(header, dict) or not isinstance(claims, dict):
        raise MalformedToken("token header and payload must be JSON objects")
    return RawToken(
        header=header,
        claims=claims,
        signature=signature,
        signing_input=f"{header_segment}.{payload_segment}".encode("ascii"),
    )


def check_algorithm(header: Mapping[str, Any]) -> str:
    alg = header.get("alg")
    if not isinstance(alg, str) or alg not in SUPPORTED_ALGORITHMS:
        raise UnsupportedAlgorithm(f"unexpected signing method: {alg!r}")
    return alg


def resolve_key(header: Mapping[str, Any], key_store: KeyStore, alg: str) -> VerificationKey:
    kid = header.get("kid")
    key = key_store.get(kid) if isinstance(kid, str) else None
    if key is None:
        raise PublicKeyNotFound()
    if key.algorithm_hint is not None and key.algorithm_hint != alg:
        raise UnsupportedAlgorithm(f"key {kid!r} is not published for {alg}")
    return key


def verify_signature(raw: RawToken, key: VerificationKey, alg: str) -> None:
    try:
        public_key = jwk.construct(key.public_key, algorithm=alg)
    except JWKError as exc:
        raise SignatureVerificationFailed() from exc
    if not public_key.verify(raw.signing_input, raw.signature):
        raise SignatureVerificationFailed()


def validate_claims(claims: Mapping[str, Any], config: VerificationConfig) -> None:
    if "iss" not in claims:
        raise MissingIssuer()
    iss = claims["iss"]
    if not isinstance(iss, str):
        raise InvalidClaim("iss", "'iss' is not a string")
    if is_provider_issuer(iss, config.issuer_marker):
        validate_provider_claims(claims, config)


def verify(token: str, key_store: KeyStore, config: VerificationConfig) -> VerificationResult:
    """Verify ``token`` and return its claims or the reason it was rejected."""
    try:
        raw = parse_token(token)
        alg = check_algorithm(raw.header)
        key = resolve_key(raw.header, key_store, alg)
        verify_signature(raw, key, alg)
        validate_claims(raw.claims, config)
    except AuthError as err:
        return Rejected(reason=err.kind, error=err)
    return Verified(claims=MappingProxyType(raw.claims))


def extract_token(authorization: Optional[str]) -> str:
    """Return the token from an Authorization header value.

    Both ``Bearer <token>`` and a bare token are accepted.
    """
    if authorization is None or not authorization.strip():
        raise AuthHeaderMissing()
    value = authorization.strip()
    if value.lower() == BEARER_PREFIX.strip():
        raise AuthHeaderMissing()
    if value[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
        value = value[len(BEARER_PREFIX):].strip()
    return value


def verify_authorization_header(
    authorization: Optional[str],
    key_store: KeyStore,
    config: VerificationConfig,
) -> VerificationResult:
    try:
        token = extract_token(authorization)
    except AuthError as err:
        return Rejected(reason=err.kind, error=err)
    return verify(token, key_store, config)
