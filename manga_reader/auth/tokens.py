"""
Access/refresh token lifecycle (HS256 JWTs via PyJWT).

Access tokens authorize API calls and carry the user's identity and role.
Refresh tokens only carry the user id and are exchanged for a new pair.
The two kinds are signed with different secrets, so one can never pass as
the other. Tokens are stateless: rotation does not revoke old tokens.

Time-based claims are checked here against an injected clock rather than
by PyJWT, which keeps validation deterministic in tests.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import jwt

from manga_reader.core import errors
from manga_reader.core.config import ReaderConfig
from manga_reader.core.entities import Role, TokenPair, User
from manga_reader.utils.logger import get_logger

logger = get_logger("auth.tokens")

ALGORITHM = "HS256"

ACCESS_REQUIRED_CLAIMS = ["user_id", "username", "role", "exp", "iat", "nbf", "sub"]
REFRESH_REQUIRED_CLAIMS = ["user_id", "exp", "iat", "nbf", "sub"]


class TokenReason(str, Enum):
    """Why a token was rejected."""
    MALFORMED = "malformed"
    WRONG_SIGNING_METHOD = "wrong_signing_method"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    USER_MISMATCH = "user_mismatch"


class TokenError(errors.AppError):
    """
    A rejected token. EXPIRED renders as JWT_EXPIRED, every other reason as
    JWT_INVALID with the reason in details.
    """

    def __init__(self, reason: TokenReason, cause: Optional[BaseException] = None):
        if reason is TokenReason.EXPIRED:
            base = errors.jwt_expired()
        else:
            base = errors.jwt_invalid(reason.value)
        super().__init__(base.kind, base.message, details=base.details, cause=cause)
        self.reason = reason


@dataclass(frozen=True)
class Claims:
    user_id: int
    subject: str
    issued_at: int
    not_before: int
    expires_at: int
    username: Optional[str] = None
    role: Optional[Role] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """
    Issues and validates token pairs.

    Args:
        access_secret: HMAC key for access tokens
        refresh_secret: HMAC key for refresh tokens, must differ from access_secret
        access_ttl: Access token lifetime
        refresh_ttl: Refresh token lifetime
        clock: Returns the current time as an aware datetime
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(hours=24),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utc_now,
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("token secrets must not be empty")
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must be different")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_config(cls, config: ReaderConfig, clock: Callable[[], datetime] = utc_now) -> "TokenService":
        return cls(
            access_secret=config.jwt_secret,
            refresh_secret=config.jwt_refresh_secret,
            access_ttl=timedelta(hours=config.jwt_expiration_hours),
            refresh_ttl=timedelta(days=config.jwt_refresh_expiration_days),
            clock=clock,
        )

    def _now(self) -> int:
        return int(self._clock().timestamp())

    # ── Issuing ──────────────────────────────────────────────────────────

    def _time_claims(self, user: User, ttl: timedelta) -> Dict[str, Any]:
        now = self._now()
        return {
            "user_id": user.id,
            "sub": str(user.id),
            "iat": now,
            "nbf": now,
            "exp": now + int(ttl.total_seconds()),
        }

    def generate_access_token(self, user: User) -> str:
        payload = self._time_claims(user, self.access_ttl)
        payload["username"] = user.username
        payload["role"] = user.role.value
        return jwt.encode(payload, self._access_secret, algorithm=ALGORITHM)

    def generate_refresh_token(self, user: User) -> str:
        payload = self._time_claims(user, self.refresh_ttl)
        return jwt.encode(payload, self._refresh_secret, algorithm=ALGORITHM)

    def issue_token_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.generate_access_token(user),
            refresh_token=self.generate_refresh_token(user),
        )

    # ── Validation ───────────────────────────────────────────────────────

    def validate_access(self, token: str) -> Claims:
        payload = self._decode(token, self._access_secret, ACCESS_REQUIRED_CLAIMS)
        try:
            role = Role(payload["role"])
        except ValueError as e:
            raise TokenError(TokenReason.MALFORMED, cause=e)
        claims = self._claims(payload, username=str(payload["username"]), role=role)
        self._check_times(claims)
        return claims

    def validate_refresh(self, token: str) -> Claims:
        payload = self._decode(token, self._refresh_secret, REFRESH_REQUIRED_CLAIMS)
        claims = self._claims(payload)
        self._check_times(claims)
        return claims

    def refresh(self, refresh_token: str, user: User) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        user is the current authoritative record for the token's subject;
        the caller loads it so a deleted user fails with USER_NOT_FOUND.
        """
        claims = self.validate_refresh(refresh_token)
        if claims.user_id != user.id:
            logger.warning("Refresh token for user %s presented for user %s", claims.user_id, user.id)
            raise TokenError(TokenReason.USER_MISMATCH)
        return self.issue_token_pair(user)

    def peek_user_id(self, refresh_token: str) -> int:
        """Validated user id of a refresh token, for loading the user before refresh()."""
        return self.validate_refresh(refresh_token).user_id

    def _decode(self, token: str, secret: str, required) -> Dict[str, Any]:
        if not token:
            raise TokenError(TokenReason.MALFORMED)
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "require": required,
                },
            )
        except jwt.InvalidAlgorithmError as e:
            raise TokenError(TokenReason.WRONG_SIGNING_METHOD, cause=e)
        except jwt.InvalidSignatureError as e:
            raise TokenError(TokenReason.BAD_SIGNATURE, cause=e)
        except jwt.InvalidTokenError as e:
            raise TokenError(TokenReason.MALFORMED, cause=e)

    @staticmethod
    def _claims(payload: Dict[str, Any], username: Optional[str] = None, role: Optional[Role] = None) -> Claims:
        try:
            return Claims(
                user_id=int(payload["user_id"]),
                subject=str(payload["sub"]),
                issued_at=int(payload["iat"]),
                not_before=int(payload["nbf"]),
                expires_at=int(payload["exp"]),
                username=username,
                role=role,
            )
        except (TypeError, ValueError) as e:
            raise TokenError(TokenReason.MALFORMED, cause=e)

    def _check_times(self, claims: Claims) -> None:
        now = self._now()
        if claims.expires_at <= now:
            raise TokenError(TokenReason.EXPIRED)
        if claims.not_before > now:
            raise TokenError(TokenReason.NOT_YET_VALID)
