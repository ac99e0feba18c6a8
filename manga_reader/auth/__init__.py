"""Token lifecycle and password hashing."""
from manga_reader.auth.passwords import PasswordHasher
from manga_reader.auth.tokens import Claims, TokenError, TokenReason, TokenService

__all__ = ["Claims", "PasswordHasher", "TokenError", "TokenReason", "TokenService"]
