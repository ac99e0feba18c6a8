"""
Accounts: registration, login, token refresh and profile management.

Users are never cached; every token refresh re-reads the authoritative
record so a deleted account cannot mint new tokens.
"""
import re
from typing import Optional

from manga_reader.auth.passwords import PasswordHasher
from manga_reader.auth.tokens import TokenService
from manga_reader.core import errors
from manga_reader.core.entities import Role, TokenPair, User
from manga_reader.data.repositories import UserRepository
from manga_reader.utils.logger import get_logger

logger = get_logger("services.user")

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")
USERNAME_MIN, USERNAME_MAX = 3, 50
PASSWORD_MIN = 6


def validate_username(username: str) -> None:
    if not username:
        raise errors.validation_error("Username must not be empty")
    if not USERNAME_MIN <= len(username) <= USERNAME_MAX:
        raise errors.validation_error(
            f"Username must be between {USERNAME_MIN} and {USERNAME_MAX} characters"
        )
    if not USERNAME_RE.match(username):
        raise errors.validation_error("Username may only contain letters, digits and underscores")


def validate_email(email: str) -> None:
    if not email:
        raise errors.validation_error("Email must not be empty")
    if not EMAIL_RE.match(email):
        raise errors.validation_error("Invalid email")


def validate_password(password: str, field: str = "Password") -> None:
    if not password or len(password) < PASSWORD_MIN:
        raise errors.validation_error(f"{field} must be at least {PASSWORD_MIN} characters")


class UserService:
    def __init__(self, user_repo: UserRepository, tokens: TokenService, hasher: PasswordHasher):
        self.user_repo = user_repo
        self.tokens = tokens
        self.hasher = hasher

    def _find(self, lookup, value) -> Optional[User]:
        try:
            return lookup(value)
        except errors.AppError as e:
            if e.is_not_found:
                return None
            raise

    def register(self, username: str, email: str, password: str, role: Role = Role.USER) -> User:
        validate_username(username)
        validate_email(email)
        validate_password(password)

        if self._find(self.user_repo.get_by_username, username) is not None:
            raise errors.user_exists(username)
        if self._find(self.user_repo.get_by_email, email) is not None:
            raise errors.conflict("User with this email already exists")

        user = User(username=username, email=email, password_hash=self.hasher.hash(password), role=role)
        user_id = self.user_repo.create(user)
        logger.info("Registered user %s (%s)", user_id, role.value)
        return self.user_repo.get_by_id(user_id)

    def login(self, login: str, password: str) -> TokenPair:
        """Authenticate by username or email."""
        if not login:
            raise errors.validation_error("Username must not be empty")
        if not password:
            raise errors.validation_error("Password must not be empty")

        user = self._find(self.user_repo.get_by_username, login)
        if user is None:
            user = self._find(self.user_repo.get_by_email, login)
        if user is None or not self.hasher.verify(password, user.password_hash):
            raise errors.invalid_credentials()
        return self.tokens.issue_token_pair(user)

    def refresh(self, refresh_token: str) -> TokenPair:
        user_id = self.tokens.peek_user_id(refresh_token)
        user = self.user_repo.get_by_id(user_id)
        return self.tokens.refresh(refresh_token, user)

    def get_profile(self, user_id: int) -> User:
        return self.user_repo.get_by_id(user_id)

    def update_profile(self, user_id: int, username: Optional[str] = None, email: Optional[str] = None) -> User:
        current = self.user_repo.get_by_id(user_id)
        username = username if username is not None else current.username
        email = email if email is not None else current.email
        validate_username(username)
        validate_email(email)

        if username != current.username:
            other = self._find(self.user_repo.get_by_username, username)
            if other is not None and other.id != user_id:
                raise errors.user_exists(username)
        if email != current.email:
            other = self._find(self.user_repo.get_by_email, email)
            if other is not None and other.id != user_id:
                raise errors.conflict("User with this email already exists")

        # Empty hash leaves the stored password untouched
        self.user_repo.update(current.model_copy(update={"username": username, "email": email, "password_hash": ""}))
        return self.user_repo.get_by_id(user_id)

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        user = self.user_repo.get_by_id(user_id)
        if not self.hasher.verify(old_password or "", user.password_hash):
            raise errors.invalid_credentials()
        validate_password(new_password, field="New password")
        self.user_repo.update(user.model_copy(update={"password_hash": self.hasher.hash(new_password)}))
        logger.info("Password changed for user %s", user_id)

    def logout(self, user_id: int) -> None:
        """Tokens are stateless; the client discards them. Nothing is revoked."""
        logger.info("User %s logged out", user_id)
