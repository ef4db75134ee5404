import time
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


# Issuers containing this marker are Cognito user pools and get the full
# provider claim checks. See claims.is_provider_issuer.
COGNITO_ISSUER_MARKER = "cognito-idp"


def cognito_issuer(region: str, user_pool_id: str) -> str:
    return f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"


class KeyDecodePolicy(str, Enum):
    """What building a key store does with a record that fails to decode."""

    SKIP = "skip"
    STRICT = "strict"


class Settings(BaseSettings):
    """Configuration loaded from environment or .env file using pydantic v2 settings.

    Required environment variables:
    - COGNITO_REGION
    - COGNITO_USERPOOL_ID

    Optional:
    - COGNITO_REALM, COGNITO_JWKS_CACHE_TTL, COGNITO_JWKS_TIMEOUT,
      COGNITO_KEY_DECODE_POLICY (skip|strict), LOG_LEVEL
    """

    # pydantic-settings normalizes env keys to lowercase with underscores
    # (e.g. COGNITO_REGION -> cognito_region); aliases match those keys.
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    region: str = Field(..., alias="cognito_region")
    user_pool_id: str = Field(..., alias="cognito_userpool_id")
    realm: str = Field("cognito jwt", alias="cognito_realm")
    jwks_cache_ttl: int = Field(3600, alias="cognito_jwks_cache_ttl")
    jwks_timeout: float = Field(10.0, alias="cognito_jwks_timeout")
    key_decode_policy: KeyDecodePolicy = Field(KeyDecodePolicy.SKIP, alias="cognito_key_decode_policy")
    log_level: str = Field("info", alias="log_level")


class VerificationConfig(BaseModel):
    """Per-call verification parameters.

    ``clock_now`` returns the current Unix time in seconds; inject a fixed
    clock to make expiry checks deterministic.
    """

    model_config = ConfigDict(frozen=True)

    region: str
    user_pool_id: str
    issuer_marker: str = COGNITO_ISSUER_MARKER
    clock_now: Callable[[], float] = time.time

    @property
    def expected_issuer(self) -> str:
        return cognito_issuer(self.region, self.user_pool_id)

    @classmethod
    def from_settings(cls, settings_obj, clock_now: Optional[Callable[[], float]] = None) -> "VerificationConfig":
        # settings_obj may be a Settings instance or any object with
        # region / user_pool_id attributes (tests use SimpleNamespace)
        kwargs = {"region": settings_obj.region, "user_pool_id": settings_obj.user_pool_id}
        if clock_now is not None:
            kwargs["clock_now"] = clock_now
        return cls(**kwargs)


# Create a settings instance if environment variables are present.
# In test runs we may not have env vars, and tests inject settings-like
# objects instead of relying on a global; avoid raising during import.
try:
    settings: Optional[Settings] = Settings()
except ValidationError:
    settings = None
