"""Bearer token verification.

With a configured secret, tokens are fully verified (signature, expiry and,
when set, audience). Without one, the claims are decoded without
verification, which is only suitable for local development.
"""
from dataclasses import dataclass
from typing import Optional

from jose import jwt
from jose.exceptions import JOSEError
from loguru import logger

from docchat.core.config import Settings
from docchat.core.errors import InvalidToken


@dataclass(frozen=True)
class Principal:
    subject_id: str
    email: str
    display_name: Optional[str]


class TokenVerifier:
    def __init__(self, secret: Optional[str], algorithm: str = "HS256", audience: Optional[str] = None):
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience
        if not secret:
            logger.warning("No JWT secret configured: bearer tokens are decoded without verification")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_audience)

    def _claims(self, token: str) -> dict:
        if self._secret:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        return jwt.get_unverified_claims(token)

    def verify(self, token: str) -> Principal:
        try:
            claims = self._claims(token)
        except JOSEError as e:
            raise InvalidToken(f"Invalid or expired token: {e}") from e
        subject = claims.get("user_id") or claims.get("sub")
        if not subject:
            raise InvalidToken("Token carries no subject")
        return Principal(
            subject_id=str(subject),
            email=claims.get("email") or "",
            display_name=claims.get("name"),
        )
