"""
Email/password authentication with opaque bearer tokens.

Tokens live in the ``tokens`` array of the user's profile document; the
session context handed to endpoints is that serialized profile.
"""
import hashlib
import logging
import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from pymongo.database import Database

from database import get_db, serialize
import profiles

logger = logging.getLogger(__name__)


def hash_password(password: str, salt: Optional[str] = None) -> Dict[str, str]:
    salt = salt or secrets.token_hex(8)
    hashed = hashlib.sha256((salt + password).encode()).hexdigest()
    return {"salt": salt, "hash": hashed}


def verify_password(password: str, salt: str, hash_val: str) -> bool:
    candidate = hashlib.sha256((salt + password).encode()).hexdigest()
    return secrets.compare_digest(candidate, hash_val)


def new_token() -> str:
    return secrets.token_hex(24)


def sign_up(db: Database, name: str, email: str, password: str) -> Dict[str, Any]:
    token = new_token()
    user = profiles.create_profile(db, name=name, email=email, password=hash_password(password), token=token)
    logger.info("New account %s", user["id"])
    return {"user": profiles.public_view(user), "token": token}


def sign_in(db: Database, email: str, password: str) -> Dict[str, Any]:
    user = db["userprofile"].find_one({"email": email.lower()})
    if not user or "password" not in user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not verify_password(password, user["password"]["salt"], user["password"]["hash"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = new_token()
    db["userprofile"].update_one({"_id": user["_id"]}, {"$push": {"tokens": token}})
    return {"user": profiles.public_view(serialize(user)), "token": token}


def sign_out(db: Database, token: str) -> None:
    db["userprofile"].update_one({"tokens": token}, {"$pull": {"tokens": token}})


def user_for_token(db: Database, token: Optional[str]) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    return serialize(db["userprofile"].find_one({"tokens": token}))


def _bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid auth scheme")
    return authorization.split(" ", 1)[1].strip()


# ---------------------------
# Dependencies
# ---------------------------

def get_token(authorization: Optional[str] = Header(None)) -> str:
    return _bearer(authorization)


def get_current_user(token: str = Depends(get_token), db: Database = Depends(get_db)) -> Dict[str, Any]:
    user = user_for_token(db, token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def get_optional_user(authorization: Optional[str] = Header(None),
                      db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    if not authorization:
        return None
    return user_for_token(db, _bearer(authorization))


def require_active_user(current=Depends(get_current_user)) -> Dict[str, Any]:
    if current.get("is_banned"):
        raise HTTPException(status_code=403, detail="Account is banned")
    return current


def require_admin(current=Depends(get_current_user)) -> Dict[str, Any]:
    # Non-admins are sent home rather than shown an error
    if current.get("role") != "admin":
        raise HTTPException(status_code=302, detail="Redirect", headers={"Location": "/"})
    return current
