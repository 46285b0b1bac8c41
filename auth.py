"""
Authentication utilities: password hashing and JWT-based request sessions.
"""
import os
from datetime import timedelta
from typing import Optional
from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, Header

from models import utcnow
from schemas import UserSession

load_dotenv()

# Password hashing context
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

# JWT settings
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash. Malformed hashes never verify."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def create_access_token(username: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Issue a bearer token for a logged-in user.

    Args:
        username: Stored as the ``sub`` claim; the request session is rebuilt from it
        role: Informational copy of the user's role; access checks re-read it from the database
        expires_delta: Lifetime of the token. Defaults to ACCESS_TOKEN_EXPIRE_DAYS.

    Returns:
        Encoded JWT string
    """
    lifetime = expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)
    claims = {"sub": username, "role": role, "exp": utcnow() + lifetime}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def session_dependency(user_store):
    """
    Build a FastAPI dependency that turns the bearer token into a UserSession.

    Reads Authorization: Bearer <token>, validates the JWT and checks that the
    user it names still exists.
    """
    def get_current_session(authorization: Optional[str] = Header(default=None)) -> UserSession:
        if not authorization:
            raise HTTPException(
                status_code=401,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )

        # Extract token from "Bearer <token>"
        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise HTTPException(
                status_code=401,
                detail="Invalid authentication header format",
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            payload = jwt.decode(parts[1], SECRET_KEY, algorithms=[ALGORITHM])
            username: str = payload.get("sub")
            if username is None:
                raise HTTPException(status_code=401, detail="Invalid token payload")
        except JWTError:
            raise HTTPException(
                status_code=401,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if user_store.get_user(username) is None:
            raise HTTPException(status_code=401, detail="User not found")

        return UserSession.for_user(username)

    return get_current_session
