"""Decoding of JWKS key records and the immutable key store built from them.

A key store is built once from a key-set document and never mutated, so any
number of concurrent verifications can read it without locking. Refreshing
means building a new store and swapping the reference (see jwks.py).
"""
import binascii
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import structlog
from cryptography.hazmat.primitives.asymmetric import rsa
from jose.utils import base64url_decode

from .config import KeyDecodePolicy
from .errors import KeyDecodeError

logger = structlog.get_logger(__name__)

_BASE64URL = re.compile(r"[A-Za-z0-9_-]*={0,2}")

EXPONENT_SIZE = 4


@dataclass(frozen=True)
class VerificationKey:
    key_id: str
    algorithm_hint: Optional[str]
    public_key: rsa.RSAPublicKey


def decode_base64url(value: Any) -> bytes:
    """Strict base64url decode; padding is optional, other characters are not."""
    if not isinstance(value, str) or not _BASE64URL.fullmatch(value):
        raise ValueError("not a base64url string")
    try:
        return base64url_decode(value.rstrip("=").encode("ascii"))
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64url length") from exc


def decode_exponent(raw: bytes) -> int:
    """Read the JWK exponent as a 4-byte big-endian unsigned integer.

    Providers publish the exponent with leading zero bytes stripped
    (65537 is ``AQAB`` -> 3 bytes), so it is left-padded to 4 bytes.
    """
    if len(raw) > EXPONENT_SIZE:
        raise ValueError("exponent longer than 4 bytes")
    return int.from_bytes(raw.rjust(EXPONENT_SIZE, b"\x00"), "big")


def decode_key(record: Mapping[str, Any]) -> VerificationKey:
    """Turn one JWKS record into a VerificationKey.

    Raises:
        KeyDecodeError: the record is not a usable RSA public key.
    """
    if not isinstance(record, Mapping):
        raise KeyDecodeError(None, "key record is not an object")

    kid = record.get("kid")
    if not isinstance(kid, str) or not kid:
        raise KeyDecodeError(None, "missing kid")
    if record.get("kty") != "RSA":
        raise KeyDecodeError(kid, f"unsupported key type {record.get('kty')!r}")

    try:
        exponent = decode_exponent(decode_base64url(record.get("e")))
    except ValueError as exc:
        raise KeyDecodeError(kid, f"bad exponent: {exc}") from exc
    try:
        modulus = int.from_bytes(decode_base64url(record.get("n")), "big")
    except ValueError as exc:
        raise KeyDecodeError(kid, f"bad modulus: {exc}") from exc
    if modulus == 0:
        raise KeyDecodeError(kid, "bad modulus: empty")

    try:
        public_key = rsa.RSAPublicNumbers(exponent, modulus).public_key()
    except ValueError as exc:
        raise KeyDecodeError(kid, f"invalid RSA parameters: {exc}") from exc

    alg = record.get("alg")
    return VerificationKey(
        key_id=kid,
        algorithm_hint=alg if isinstance(alg, str) and alg else None,
        public_key=public_key,
    )


class KeyStore:
    """Read-only mapping of kid -> VerificationKey."""

    def __init__(self, keys: Iterable[VerificationKey] = (), errors: Iterable[KeyDecodeError] = ()):
        by_kid: Dict[str, VerificationKey] = {}
        for key in keys:
            if key.key_id in by_kid:
                raise KeyDecodeError(key.key_id, "duplicate kid")
            by_kid[key.key_id] = key
        self._keys: Mapping[str, VerificationKey] = MappingProxyType(by_kid)
        self._errors: Tuple[KeyDecodeError, ...] = tuple(errors)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        policy: KeyDecodePolicy = KeyDecodePolicy.SKIP,
    ) -> "KeyStore":
        keys: Dict[str, VerificationKey] = {}
        errors = []
        for record in records:
            try:
                key = decode_key(record)
                if key.key_id in keys:
                    raise KeyDecodeError(key.key_id, "duplicate kid")
            except KeyDecodeError as exc:
                if policy == KeyDecodePolicy.STRICT:
                    raise
                logger.warning("Skipping JWKS key", kid=exc.kid, reason=exc.reason)
                errors.append(exc)
                continue
            keys[key.key_id] = key
        return cls(keys.values(), errors)

    @classmethod
    def from_jwks(
        cls,
        document: Mapping[str, Any],
        policy: KeyDecodePolicy = KeyDecodePolicy.SKIP,
    ) -> "KeyStore":
        """Build a store from the provider's ``{"keys": [...]}`` document."""
        records = document.get("keys") if isinstance(document, Mapping) else None
        if not isinstance(records, list):
            raise KeyDecodeError(None, "JWKS document has no 'keys' list")
        return cls.from_records(records, policy)

    def get(self, kid: str) -> Optional[VerificationKey]:
        return self._keys.get(kid)

    @property
    def kids(self) -> Tuple[str, ...]:
        return tuple(self._keys)

    @property
    def errors(self) -> Tuple[KeyDecodeError, ...]:
        """Decode errors of records skipped while building the store."""
        return self._errors

    def __contains__(self, kid: object) -> bool:
        return kid in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"KeyStore(kids={list(self._keys)!r})"
