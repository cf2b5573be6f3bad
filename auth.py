import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import AuthError, ConflictError, NotFoundError, ValidationError
from schemas import Role, User
from settings import Settings
from stores import UserStore

logger = logging.getLogger(__name__)


class AuthService:
    """Registration, login, and bearer-token verification."""

    def __init__(self, users: UserStore, settings: Settings):
        self.users = users
        self.settings = settings
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds
        )

    # Utilities

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return self.pwd_context.verify(plain_password, hashed_password)

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(days=self.settings.token_expire_days)
        )
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def decode_token(self, token: str) -> dict:
        try:
            return jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except JWTError as exc:
            raise AuthError("Invalid or expired token") from exc

    # Operations

    def register(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> User:
        if not name or not email or not password:
            raise ValidationError("Please enter all fields")
        email = email.strip().lower()
        if self.users.find_by_email(email):
            raise ConflictError("User already has an account")
        user = User(
            name=name,
            email=email,
            password=self.hash_password(password),
            token=self.create_access_token({"email": email}),
            role=Role.user,
        )
        user = self.users.create(user)
        logger.info("registered user %s", user.id)
        return user

    def login(self, email: Optional[str], password: Optional[str]) -> User:
        """Check credentials and return the user; its token is the one issued at registration."""
        if not email or not password:
            raise ValidationError("Please enter all fields")
        email = email.strip().lower()
        user = self.users.find_by_email(email)
        if not user:
            raise NotFoundError("User is not registered, please register first")
        if not self.verify_password(password, user.password):
            raise AuthError("Invalid Password")
        return user

    def authenticate(self, token: Optional[str]) -> dict:
        if not token:
            raise AuthError("Not authenticated")
        claim = self.decode_token(token)
        if not claim.get("email"):
            raise AuthError("Invalid token")
        return claim

    def current_user(self, token: Optional[str]) -> User:
        """Resolve a bearer token to the live user record it names."""
        claim = self.authenticate(token)
        user = self.users.find_by_email(claim["email"])
        if not user:
            raise NotFoundError("User not found")
        return user
