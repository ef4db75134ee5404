import inspect
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import requests
import structlog
from fastapi import Depends, Request
from fastapi.testclient import TestClient

from src.cognito_jwt.errors import ErrorKind
from src.cognito_jwt.log import configure_logging
from src.cognito_jwt.main import create_app
from src.cognito_jwt.middleware import CognitoAuth

from conftest import b64


# exp of a real Cognito access token issued in July 2019
EXPIRED_EXP = 1563874624


@pytest.fixture
def auth(key_store, config):
    return CognitoAuth(key_store=lambda: key_store, config=config, realm="test realm")


@pytest.fixture
def client(auth):
    return TestClient(create_app(auth))


def test_health_is_public(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_protected_happy_path(client, make_token, cognito_claims):
    r = client.get("/protected", headers={"Authorization": f"Bearer {make_token(cognito_claims)}"})

    assert r.status_code == 200
    assert r.json() == {"message": "Hello, tester"}


def test_protected_accepts_raw_token_header(client, make_token, cognito_claims):
    del cognito_claims["username"]
    cognito_claims["cognito:username"] = "pool-user"

    r = client.get("/protected", headers={"Authorization": make_token(cognito_claims)})

    assert r.status_code == 200
    assert r.json() == {"message": "Hello, pool-user"}


def test_missing_authorization_header(client):
    with patch("src.cognito_jwt.middleware.logger") as logger:
        r = client.get("/protected")

    assert r.status_code == 401
    assert r.json() == {"code": 401, "message": "auth header empty"}
    assert r.headers.get("www-authenticate") == 'Bearer realm="test realm"'
    assert logger.warning.call_args.kwargs["reason"] == ErrorKind.MISSING_HEADER.value


def test_expired_cognito_token_is_unauthorised(client, make_token, cognito_claims):
    cognito_claims["exp"] = EXPIRED_EXP

    with patch("src.cognito_jwt.middleware.logger") as logger:
        r = client.get("/protected", headers={"Authorization": make_token(cognito_claims)})

    assert r.status_code == 401
    assert r.json()["message"] == "token expired"
    assert r.headers.get("www-authenticate") == 'Bearer realm="test realm"'
    # same 401 as a missing header, but a different recorded reason
    assert logger.warning.call_args.kwargs["reason"] == ErrorKind.EXPIRED_TOKEN.value


@pytest.mark.parametrize(
    "mutate",
    [
        lambda claims: claims.update(token_use="refresh"),
        lambda claims: claims.update(iss="https://cognito-idp.us-east-1.amazonaws.com/us-east-1_TEST"),
        lambda claims: claims.pop("iss"),
        lambda claims: claims.pop("exp"),
    ],
)
def test_invalid_token_types(client, make_token, cognito_claims, mutate):
    mutate(cognito_claims)

    r = client.get("/protected", headers={"Authorization": f"Bearer {make_token(cognito_claims)}"})

    assert r.status_code == 401
    assert r.json()["message"] == "invalid authentication token"


def test_garbage_token(client):
    r = client.get("/protected", headers={"Authorization": "Bearer dummy-token"})

    assert r.status_code == 401
    assert r.json()["message"] == "invalid authentication token"


def test_key_store_unavailable(config, make_token, cognito_claims):
    def broken_store():
        raise requests.ConnectionError("boom")

    client = TestClient(create_app(CognitoAuth(key_store=broken_store, config=config)))
    r = client.get("/protected", headers={"Authorization": make_token(cognito_claims)})

    assert r.status_code == 503
    assert r.json()["message"] == "authentication unavailable"


def test_claims_stored_on_request_state(auth, make_token, cognito_claims):
    app = create_app(auth)

    @app.get("/state")
    def state(request: Request, claims=Depends(auth)) -> dict:
        return {"sub": request.state.jwt_claims["sub"], "same": request.state.jwt_claims is claims}

    r = TestClient(app).get("/state", headers={"Authorization": make_token(cognito_claims)})

    assert r.status_code == 200
    assert r.json() == {"sub": cognito_claims["sub"], "same": True}


def test_create_app_without_settings_fails():
    with patch("src.cognito_jwt.main.settings", None):
        with pytest.raises(RuntimeError):
            create_app()


def test_create_app_from_settings():
    settings_obj = SimpleNamespace(
        region="eu-west-2",
        user_pool_id="eu-west-2_nUWNsylzT",
        realm="api",
        jwks_cache_ttl=3600,
        jwks_timeout=10.0,
        key_decode_policy="skip",
        log_level="debug",
    )

    with patch("src.cognito_jwt.main.settings", settings_obj), patch(
        "src.cognito_jwt.main.configure_logging"
    ) as configure_logging, patch("requests.get") as get:
        client = TestClient(create_app())
        r = client.get("/health")

    assert r.status_code == 200
    configure_logging.assert_called_once_with("debug")
    # keys are only downloaded when a protected route is hit
    get.assert_not_called()


def test_configure_logging():
    try:
        configure_logging("warning")
        assert structlog.is_configured()
    finally:
        structlog.reset_defaults()


def test_deeply_nested_header_is_unauthorised(client):
    token = b64(b"[" * 100000) + ".e30.c2ln"

    r = client.get("/protected", headers={"Authorization": f"Bearer {token}"})

    assert r.status_code == 401
    assert r.json()["message"] == "invalid authentication token"


def test_dependency_runs_in_threadpool():
    # JWKSProvider refreshes with a blocking requests.get
    assert not inspect.iscoroutinefunction(CognitoAuth.__call__)


def test_unknown_route_uses_error_body_shape(client):
    r = client.get("/nope")

    assert r.status_code == 404
    assert r.json() == {"code": 404, "message": "Not Found"}


def test_wrong_method_uses_error_body_shape(client):
    r = client.post("/health")

    assert r.status_code == 405
    assert r.json() == {"code": 405, "message": "Method Not Allowed"}
