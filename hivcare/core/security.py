from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
import jwt
from hivcare.core.config import settings


def create_access_token(subject: str, data: Dict[str, Any]) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "sub": subject,
        "token_type": "access"
    })
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except jwt.PyJWTError:
        return None


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify token and check token type"""
    payload = decode_token(token)
    if not payload:
        return None

    if payload.get("token_type") != token_type:
        return None

    return payload


def create_actor_token(
    actor_id: int,
    name: str,
    role: str,
    permissions: Optional[List[str]] = None
) -> str:
    """Access token carrying the identity fields the API turns into an Actor"""
    data: Dict[str, Any] = {"name": name, "role": role}
    if permissions is not None:
        data["permissions"] = permissions
    return create_access_token(str(actor_id), data)
