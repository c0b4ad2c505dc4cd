"""Registration, login and bearer-token handling."""

from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from invoice_chat.db import repository
from invoice_chat.errors import AuthenticationError, EmailAlreadyRegisteredError
from invoice_chat.utils.config import AuthConfig
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode(
        "utf-8"
    )


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """Issues and verifies access tokens for registered users.

    Args:
        config: Authentication configuration.
    """

    def __init__(self, config: AuthConfig) -> None:
        if not config.secret_key:
            raise ValueError(
                "auth.secret_key is not set; export INVOICE_CHAT_AUTH_SECRET_KEY"
            )
        self.config = config

    def register(self, session: Session, email: str, password: str) -> str:
        """Create a user and return an access token.

        Raises:
            EmailAlreadyRegisteredError: If the email is taken.
        """
        email = email.strip().lower()
        if repository.get_user_by_email(session, email) is not None:
            raise EmailAlreadyRegisteredError("Email already in use")

        user = repository.create_user(
            session, email, hash_password(password, self.config.bcrypt_rounds)
        )
        session.commit()
        logger.info("Registered user %s", user.id)
        return self.create_token(user.id, user.email)

    def login(self, session: Session, email: str, password: str) -> str:
        """Verify credentials and return an access token.

        Raises:
            AuthenticationError: If the email or password is wrong.
        """
        user = repository.get_user_by_email(session, email.strip().lower())
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return self.create_token(user.id, user.email)

    def create_token(self, user_id: int, email: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "iat": now,
            "exp": now + timedelta(minutes=self.config.access_token_expire_minutes),
        }
        return jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)

    def decode_token(self, token: str) -> int:
        """Return the user id carried by a valid token.

        Raises:
            AuthenticationError: If the token is expired, tampered or malformed.
        """
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.config.algorithm],
                options={"require": ["exp", "sub"]},
            )
            return int(payload["sub"])
        except (jwt.InvalidTokenError, ValueError) as exc:
            raise AuthenticationError("Invalid or expired token") from exc
