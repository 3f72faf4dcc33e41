# gymmini/auth.py
from datetime import datetime, timedelta, timezone
import uuid
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from pymongo.database import Database

from gymmini import settings
from gymmini.db import get_db
from gymmini.db.identities import get_identity, get_identity_by_email

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.JWT_ALG


# --- password utils ----------------------------------------------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# --- JWT helpers -------------------------------------------------------------
def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def issue_token(identity: dict, expires_delta: Optional[timedelta] = None) -> str:
    iat = _now_utc()
    exp = iat + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MIN))
    payload = {
        "sub": str(identity["_id"]),
        "email": identity.get("email"),
        "role": identity.get("role"),
        "type": "access",
        "jti": str(uuid.uuid4()),
        "iat": int(iat.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(raw: str) -> dict:
    try:
        payload = jwt.decode(raw, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Wrong token type")
    return payload


# --- dependency used by routes -----------------------------------------------
def get_current_user(request: Request, db: Database = Depends(get_db)) -> dict:
    """
    Pull token from Authorization header (Bearer) OR from 'token' cookie and
    return the identity document it names.
    """
    auth_header = request.headers.get("Authorization")
    token = None
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
    if not token:
        token = request.cookies.get("token")
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authentication token")

    payload = verify_token(token)
    user = get_identity(db, payload.get("sub"))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def authenticate_user(db: Database, email: str, password: str) -> Optional[dict]:
    user = get_identity_by_email(db, email)
    if not user or not verify_password(password, user.get("password")):
        return None
    return user
