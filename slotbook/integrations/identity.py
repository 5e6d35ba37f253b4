from typing import Optional, Protocol

import jwt

from slotbook.config import Settings
from slotbook.errors import Unauthorized


class IdentityProvider(Protocol):
    def resolve(self, token: str) -> str: ...


class JwtIdentityProvider:
    """Bearer tokens issued by the external identity provider; `sub` is the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    @classmethod
    def from_settings(cls, settings: Settings) -> "JwtIdentityProvider":
        return cls(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_audience)

    def resolve(self, token: str) -> str:
        options = {} if self.audience else {"verify_aud": False}
        try:
            data = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options=options,
            )
        except jwt.PyJWTError:
            raise Unauthorized("Invalid or expired token")
        user_id = data.get("sub")
        if not user_id:
            raise Unauthorized("Token has no subject")
        return str(user_id)

    def issue(self, user_id: str, **claims) -> str:
        """Mint a token; used by local tooling and tests."""
        data = {"sub": str(user_id), **claims}
        if self.audience:
            data.setdefault("aud", self.audience)
        return jwt.encode(data, self.secret, algorithm=self.algorithm)
