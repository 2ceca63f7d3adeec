from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Any

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import settings
from database import get_db, to_object_id
from errors import Unauthenticated, Forbidden, NotFound

# --- Security & JWT Configuration ---
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# --- Password Hashing Functions ---
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)


# --- JWT Token Creation ---
def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_for_user(user: Dict[str, Any]) -> str:
    return create_access_token(data={"sub": str(user["_id"]), "role": user.get("role", "user")})


# --- User Authentication Functions ---
def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)):
    if not token:
        raise Unauthenticated("Unauthorized")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise Unauthenticated("Could not validate credentials")
    except JWTError:
        raise Unauthenticated("Invalid or expired token")

    try:
        oid = to_object_id(user_id, "User")
    except NotFound:
        raise Unauthenticated("Could not validate credentials")

    user = db.users.find_one({"_id": oid})
    if user is None:
        raise Unauthenticated("Could not validate credentials")
    return user


# --- Role gating ---
def roles(*allowed: str) -> Callable[[str], bool]:
    allowed_set = set(allowed)
    return lambda role: role in allowed_set


def require(predicate: Callable[[str], bool]):
    """
    Builds a dependency that resolves the caller and then checks its role
    against `predicate`. Handlers declare it instead of checking roles inline.
    """
    def dependency(current_user: Dict[str, Any] = Depends(get_current_user)):
        if not predicate(current_user.get("role", "user")):
            raise Forbidden("Access denied")
        return current_user
    return dependency


buyer_only = require(roles("user"))
seller_only = require(roles("seller"))
admin_only = require(roles("admin"))
