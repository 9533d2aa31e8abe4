from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .errors import AuthError, AuthFailure
from .settings import Settings

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
class PasswordHasher:
    """bcrypt hashing via passlib. Plaintext passwords are never stored."""

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, digest: str) -> bool:
        try:
            return self._context.verify(password, digest)
        except ValueError:
            # Unrecognized or corrupt digest
            return False


# PUBLIC_INTERFACE
class TokenService:
    """
    Issues and verifies signed, time-bound access tokens (JWT).

    The signing key is handed in once at construction; the same instance signs
    and verifies. Tokens carry ``user_id``, ``iat`` and ``exp`` claims.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
        clock: Optional[Clock] = None,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._ttl = ttl
        self._clock: Clock = clock or _utcnow

    @classmethod
    def from_settings(cls, settings: Settings, clock: Optional[Clock] = None) -> "TokenService":
        return cls(
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
            ttl=settings.token_ttl,
            clock=clock,
        )

    # PUBLIC_INTERFACE
    def issue(self, user_id: int) -> str:
        """Return a token for ``user_id`` that expires ``ttl`` after now."""
        now = self._clock()
        claims = {
            "user_id": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    # PUBLIC_INTERFACE
    def verify(self, token: str) -> int:
        """
        Return the user id embedded in ``token``.

        Raises:
            AuthError(MALFORMED): unparseable token, bad signature or missing claims.
            AuthError(EXPIRED): the current time is at or past the ``exp`` claim.
        """
        try:
            # Expiry is checked below so that a token is dead at exactly ``exp``
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as e:
            raise AuthError(AuthFailure.MALFORMED) from e

        exp = payload.get("exp")
        user_id = payload.get("user_id")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise AuthError(AuthFailure.MALFORMED)
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise AuthError(AuthFailure.MALFORMED)
        if self._clock().timestamp() >= exp:
            raise AuthError(AuthFailure.EXPIRED)
        return user_id
