"""
JWT session tokens.

Browser sessions carry a short JWT either in the Authorization header or in the
``access_token`` cookie. Programmatic clients use API tokens instead (see
``api_tokens``).
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

_REQUIRED_CLAIMS = ("sub", "exp", "type")


@dataclass
class TokenPayload:
    """Decoded session token claims."""

    sub: str  # user id
    exp: datetime
    iat: datetime
    type: str
    email: str | None = None
    role: str | None = None


class TokenService:
    """Issues and verifies HS256 session tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60 * 24,
    ):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._access_token_expire_minutes = access_token_expire_minutes

    @property
    def expires_in_seconds(self) -> int:
        return self._access_token_expire_minutes * 60

    def create_access_token(
        self,
        user_id: str,
        email: str | None = None,
        role: str | None = None,
    ) -> str:
        """
        Create a signed access token.

        Args:
            user_id: Subject of the token
            email: Optional email claim
            role: Optional role claim

        Returns:
            Encoded JWT
        """
        now = datetime.now(UTC)
        claims = {
            "sub": user_id,
            "exp": now + timedelta(minutes=self._access_token_expire_minutes),
            "iat": now,
            "type": "access",
        }
        if email:
            claims["email"] = email
        if role:
            claims["role"] = role

        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> TokenPayload | None:
        """Return the payload of a valid token, None when invalid or expired."""
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
            missing = [c for c in _REQUIRED_CLAIMS if c not in claims]
            if missing:
                raise JWTError(f"Missing required claims: {', '.join(missing)}")
        except JWTError:
            return None

        return TokenPayload(
            sub=claims["sub"],
            exp=datetime.fromtimestamp(claims["exp"], tz=UTC),
            iat=datetime.fromtimestamp(claims.get("iat", 0), tz=UTC),
            type=claims["type"],
            email=claims.get("email"),
            role=claims.get("role"),
        )

    def verify_access_token(self, token: str) -> TokenPayload | None:
        payload = self.decode_token(token)
        if payload and payload.type == "access":
            return payload
        return None
