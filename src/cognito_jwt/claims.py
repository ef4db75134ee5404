"""Claim checks for Cognito user pool tokens.

All string comparisons go through the constant-time comparator. Each
validator raises an AuthError subclass on failure and returns None otherwise.
"""
import math
from typing import Any, Iterable, Mapping

from .comparator import constant_time_equals, timestamp_not_after
from .config import VerificationConfig
from .errors import ClaimParseError, InvalidClaim, TokenExpired

TOKEN_USES = ("id", "access")


def is_provider_issuer(issuer: str, marker: str) -> bool:
    """Issuer dispatch policy: which tokens get the Cognito claim checks.

    A token whose ``iss`` contains ``marker`` anywhere is treated as a Cognito
    token and must pass ``validate_provider_claims``. Any other issuer is
    accepted on its signature alone. This is a substring match, so an issuer
    such as ``https://evil.example/cognito-idp`` is also routed to the Cognito
    checks (and will then fail the exact issuer match). Callers that want every
    token checked must call ``validate_provider_claims`` themselves.
    """
    return marker in issuer


def _matches_any(value: str, allowed: Iterable[str]) -> bool:
    matched = False
    # no early exit: every allowed value is compared
    for candidate in allowed:
        matched |= constant_time_equals(value, candidate)
    return matched


def validate_issuer(claims: Mapping[str, Any], allowed_issuers: Iterable[str]) -> None:
    iss = claims.get("iss")
    if not isinstance(iss, str) or not _matches_any(iss, allowed_issuers):
        raise InvalidClaim("iss", "'iss' does not match any of the valid issuers")


def validate_token_use(claims: Mapping[str, Any]) -> None:
    token_use = claims.get("token_use")
    if not isinstance(token_use, str) or not _matches_any(token_use, TOKEN_USES):
        raise InvalidClaim("token_use", "token_use should be id or access")


def validate_expiry(claims: Mapping[str, Any], now: float) -> None:
    """Reject a token whose ``exp`` is missing, non-numeric, or in the past.

    Uses comparator.timestamp_not_after, which only handles 32-bit timestamps
    and normalises ``exp`` with ``abs()``; see that module for the limits.
    """
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise ClaimParseError()
    if isinstance(exp, float) and not math.isfinite(exp):
        raise ClaimParseError()
    if not timestamp_not_after(now, exp):
        raise TokenExpired()


def validate_provider_claims(claims: Mapping[str, Any], config: VerificationConfig) -> None:
    """Run the Cognito claim set: issuer, token_use, then expiry."""
    validate_issuer(claims, [config.expected_issuer])
    validate_token_use(claims)
    validate_expiry(claims, config.clock_now())
