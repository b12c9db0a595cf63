from typing import Optional

from fastapi import Depends, Header, HTTPException
from passlib.context import CryptContext

from .db import User
from .storage import Storage, get_store

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    # unrecognized or corrupt hashes never match
    try:
        return pwd_context.verify(password, hashed_password)
    except ValueError:
        return False


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    store: Storage = Depends(get_store),
) -> Optional[User]:
    """Resolve the acting user from the ``Authorization`` header.

    Session handling lives outside this service: the bearer token carries the
    user id. No header means an anonymous caller (``None``).
    """
    if authorization is None:
        return None
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise HTTPException(status_code=401, detail="invalid_token")
    token = authorization[len(prefix) :].strip()
    if not token.isdigit():
        raise HTTPException(status_code=401, detail="invalid_token")
    user = store.get_user(int(token))
    if user is None:
        raise HTTPException(status_code=401, detail="invalid_token")
    return user


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="not_authenticated")
    return user
