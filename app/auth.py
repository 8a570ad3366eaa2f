"""Operator authentication for the dashboard API (JWT bearer tokens)."""

from datetime import timedelta
from typing import Optional, Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings
from app.schemas.auth import TokenData, Operator, OperatorInDB
from app.utils.clock import utc_now

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = utc_now() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


# Single configured operator, hashed on first use
_ADMIN = None


def get_admin_operator() -> OperatorInDB:
    global _ADMIN
    if _ADMIN is None:
        _ADMIN = OperatorInDB(
            username=settings.admin_username,
            full_name="Administrator",
            disabled=False,
            hashed_password=get_password_hash(settings.admin_password),
        )
    return _ADMIN


def get_operator(username: str) -> Optional[OperatorInDB]:
    admin = get_admin_operator()
    if username == admin.username:
        return admin
    return None


def authenticate_operator(username: str, password: str):
    operator = get_operator(username)
    if not operator:
        return False
    if not verify_password(password, operator.hashed_password):
        return False
    return operator


def get_current_operator(token: Annotated[str, Depends(oauth2_scheme)]) -> OperatorInDB:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username)
    except JWTError:
        raise credentials_exception
    operator = get_operator(token_data.username)
    if operator is None:
        raise credentials_exception
    return operator


def get_current_active_operator(current: Annotated[Operator, Depends(get_current_operator)]) -> Operator:
    if current.disabled:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive operator")
    return current
