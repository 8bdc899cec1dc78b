import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, serialize_doc, to_object_id
from errors import Forbidden, InvalidInput, NotAuthenticated, NotFound
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise NotAuthenticated("Invalid or expired token")


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(user)
    # Never send password hash
    user.pop("password_hash", None)
    return user


def register_user(db, name: str, email: str, password: str) -> Dict[str, Any]:
    email = email.lower()
    if db["user"].find_one({"email": email}):
        raise InvalidInput("Email already registered")
    user_model = UserSchema(name=name, email=email, password_hash=hash_password(password))
    try:
        user_id = create_document("user", user_model, database=db)
    except DuplicateKeyError:
        raise InvalidInput("Email already registered")
    logger.info("Registered user %s", user_id)
    return db["user"].find_one({"_id": to_object_id(user_id)})


def authenticate_user(db, email: str, password: str) -> Dict[str, Any]:
    user = db["user"].find_one({"email": email.lower()})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise InvalidInput("Invalid email or password")
    return user


def issue_token(user: Dict[str, Any]) -> str:
    return create_access_token({"sub": str(user["_id"])})


def update_profile(db, user_id: str, name: Optional[str] = None, email: Optional[str] = None, password: Optional[str] = None) -> Dict[str, Any]:
    """Change any of name, email and password; an email already used by another account is rejected."""
    obj_id = to_object_id(user_id)
    user = db["user"].find_one({"_id": obj_id}) if obj_id else None
    if not user:
        raise NotFound("User not found")

    changes: Dict[str, Any] = {}
    if name is not None:
        changes["name"] = name
    if email is not None and email.lower() != user["email"]:
        email = email.lower()
        if db["user"].find_one({"email": email, "_id": {"$ne": obj_id}}, {"_id": 1}):
            raise InvalidInput("Email already in use")
        changes["email"] = email
    if password is not None:
        changes["password_hash"] = hash_password(password)
    if changes:
        changes["updatedAt"] = datetime.now(timezone.utc)
        try:
            db["user"].update_one({"_id": obj_id}, {"$set": changes})
        except DuplicateKeyError:
            raise InvalidInput("Email already in use")
        logger.info("Profile updated for user %s (%s)", user_id, ", ".join(sorted(k for k in changes if k != "updatedAt")))
    return db["user"].find_one({"_id": obj_id})


# Dependency to get current user

def get_current_user(authorization: Optional[str] = Header(default=None), db=Depends(get_db)):
    if not authorization or not authorization.startswith("Bearer "):
        raise NotAuthenticated("Not authenticated")
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token)
    user_id = to_object_id(payload.get("sub"))
    if not user_id:
        raise NotAuthenticated("Invalid token")
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise NotAuthenticated("User not found")
    return public_user(user)


def require_admin(current_user: dict = Depends(get_current_user)):
    if not current_user.get("is_admin"):
        raise Forbidden("Admin access required")
    return current_user
