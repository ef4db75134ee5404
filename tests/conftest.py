import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt
from jose.utils import base64url_encode

# Ensure project root is on sys.path so tests can import the `src` package.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.cognito_jwt.config import VerificationConfig, cognito_issuer  # noqa: E402
from src.cognito_jwt.keys import KeyStore  # noqa: E402

REGION = "eu-west-2"
USER_POOL_ID = "eu-west-2_nUWNsylzT"
ISSUER = cognito_issuer(REGION, USER_POOL_ID)
NOW = 1700000000


def b64(value: bytes) -> str:
    return base64url_encode(value).decode("utf-8")


def generate_rsa_jwk_and_pem(kid: str, alg: str = "RS256"):
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")

    pub_numbers = private_key.public_key().public_numbers()
    n, e = pub_numbers.n, pub_numbers.e
    jwk = {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "alg": alg,
        "n": b64(n.to_bytes((n.bit_length() + 7) // 8, "big")),
        "e": b64(e.to_bytes((e.bit_length() + 7) // 8, "big")),
    }
    return private_pem, jwk


@pytest.fixture(scope="session")
def signing_key():
    """(kid, private_pem, jwk) shared by the whole session; RSA keygen is slow."""
    private_pem, jwk = generate_rsa_jwk_and_pem("test-kid")
    return "test-kid", private_pem, jwk


@pytest.fixture(scope="session")
def other_signing_key():
    private_pem, jwk = generate_rsa_jwk_and_pem("other-kid")
    return "other-kid", private_pem, jwk


@pytest.fixture
def jwks(signing_key):
    return {"keys": [signing_key[2]]}


@pytest.fixture
def key_store(jwks):
    return KeyStore.from_jwks(jwks)


@pytest.fixture
def config():
    return VerificationConfig(region=REGION, user_pool_id=USER_POOL_ID, clock_now=lambda: NOW)


@pytest.fixture
def cognito_claims():
    return {
        "sub": "dd038879-1106-4df3-91ae-03e0b79f7843",
        "username": "tester",
        "iss": ISSUER,
        "token_use": "access",
        "exp": NOW + 300,
    }


@pytest.fixture
def make_token(signing_key):
    kid, private_pem, _ = signing_key

    def _make(claims, headers=None, algorithm="RS256", key=None):
        hdrs = {"kid": kid}
        hdrs.update(headers or {})
        return jwt.encode(claims, key or private_pem, algorithm=algorithm, headers=hdrs)

    return _make

