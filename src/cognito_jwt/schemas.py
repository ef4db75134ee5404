from typing import Any, Mapping, Optional

from pydantic import BaseModel


class TokenData(BaseModel):
    sub: Optional[str] = None
    username: Optional[str] = None
    token_use: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "TokenData":
        username = claims.get("username") or claims.get("cognito:username")
        return cls(sub=claims.get("sub"), username=username, token_use=claims.get("token_use"))
