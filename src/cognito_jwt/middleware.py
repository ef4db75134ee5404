"""FastAPI dependency that guards routes with Cognito JWT verification."""
from typing import Any, Callable, Mapping, Optional

import requests
import structlog
from fastapi import HTTPException, Request, status

from .config import VerificationConfig
from .errors import ErrorKind, KeyDecodeError
from .keys import KeyStore
from .verifier import Rejected, verify_authorization_header

logger = structlog.get_logger(__name__)

DEFAULT_REALM = "cognito jwt"

_DETAILS = {
    ErrorKind.EXPIRED_TOKEN: "token expired",
    ErrorKind.MISSING_HEADER: "auth header empty",
}


class CognitoAuth:
    """Use as ``Depends(auth)``; resolves to the verified claim set.

    ``key_store`` is called once per request, so passing a JWKSProvider picks
    up refreshed key sets while a plain ``lambda: store`` pins one snapshot.
    """

    def __init__(
        self,
        key_store: Callable[[], KeyStore],
        config: VerificationConfig,
        realm: str = DEFAULT_REALM,
    ):
        self.key_store = key_store
        self.config = config
        self.realm = realm

    def unauthorized(self, detail: str) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": f'Bearer realm="{self.realm}"'},
        )

    def authenticate(self, authorization: Optional[str]) -> Mapping[str, Any]:
        try:
            store = self.key_store()
        except (requests.RequestException, KeyDecodeError) as exc:
            logger.error("JWKS unavailable", error=str(exc))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="authentication unavailable",
            ) from exc

        result = verify_authorization_header(authorization, store, self.config)
        if isinstance(result, Rejected):
            logger.warning("JWT token rejected", reason=result.reason.value, error=result.message)
            raise self.unauthorized(_DETAILS.get(result.reason, "invalid authentication token"))
        return result.claims

    def __call__(self, request: Request) -> Mapping[str, Any]:
        claims = self.authenticate(request.headers.get("Authorization"))
        request.state.jwt_claims = claims
        return claims
