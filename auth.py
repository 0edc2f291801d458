from dataclasses import dataclass
from typing import Optional

import jwt

from errors import Forbidden, Unauthorized


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class TokenVerifier:
    """Verify bearer tokens issued by the identity provider (HS-signed JWTs)"""

    def __init__(self, secret: Optional[str], algorithm: str = "HS256", audience: Optional[str] = None):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    @classmethod
    def from_settings(cls, settings) -> "TokenVerifier":
        return cls(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_audience)

    def verify(self, token: str) -> Identity:
        if not self.secret:
            raise Unauthorized("Token verification is not configured")
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.PyJWTError as exc:
            raise Unauthorized("Unauthorized access") from exc

        email = claims.get("email")
        if not email:
            raise Unauthorized("Token carries no email")
        return Identity(
            uid=str(claims.get("sub") or claims.get("user_id") or email),
            email=email,
            name=claims.get("name"),
            picture=claims.get("picture"),
        )


def check_email(identity: Identity, claimed_email: Optional[str]) -> Identity:
    """The email the client claims must be the one the token was issued for"""
    if not claimed_email or claimed_email.strip().lower() != identity.email.lower():
        raise Forbidden("Forbidden access")
    return identity
