from typing import Any, Mapping, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import VerificationConfig, settings
from .jwks import JWKSProvider
from .log import configure_logging
from .middleware import CognitoAuth
from .schemas import TokenData


def auth_from_settings(settings_obj) -> CognitoAuth:
    return CognitoAuth(
        key_store=JWKSProvider.from_settings(settings_obj),
        config=VerificationConfig.from_settings(settings_obj),
        realm=settings_obj.realm,
    )


def create_app(cognito_auth: Optional[CognitoAuth] = None) -> FastAPI:
    """Build the API. Run with ``uvicorn --factory src.cognito_jwt.main:create_app``."""
    if cognito_auth is None:
        if settings is None:
            raise RuntimeError("Cognito settings are not configured (COGNITO_REGION, COGNITO_USERPOOL_ID)")
        configure_logging(settings.log_level)
        cognito_auth = auth_from_settings(settings)

    app = FastAPI(title="Cognito JWT protected API")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # same body shape for every error response: {"code": ..., "message": ...}
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.status_code, "message": exc.detail},
            headers=exc.headers,
        )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/protected")
    def protected(claims: Mapping[str, Any] = Depends(cognito_auth)) -> dict:
        user = TokenData.from_claims(claims)
        return {"message": f"Hello, {user.username or user.sub}"}

    return app
