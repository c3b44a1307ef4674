import os
from jose import jwt, JWTError
from datetime import datetime, timedelta
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import crud
from .models import get_sessionmaker

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', str(60 * 24 * 7)))

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    encoded = jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)
    return encoded


def decode_token(token: str):
    try:
        payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    sessionmaker=Depends(get_sessionmaker),
) -> dict:
    """Resolve the bearer token to a known user. Tokens are issued by the identity service."""
    if credentials is None:
        raise HTTPException(401, 'Access token not found')
    payload = decode_token(credentials.credentials)
    if not payload or payload.get('id') is None:
        raise HTTPException(401, 'Invalid access token')
    async with sessionmaker() as session:
        user = await crud.get_user_by_id(session, payload['id'])
    if not user:
        raise HTTPException(401, 'Unauthorized request')
    return {'id': user.id, 'username': user.username, 'role': user.role}


def require_roles(*roles: str):
    async def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user['role'] not in roles:
            raise HTTPException(403, f"Only {', '.join(roles)} accounts can do this")
        return current_user
    return dependency
