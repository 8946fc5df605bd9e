import jwt
from typing import Optional
from splitshare.core.config import Settings


def decode_access_token(token: str, settings: Settings) -> Optional[dict]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(token: str, settings: Settings) -> Optional[str]:
    """Extract user_id from JWT token"""
    payload = decode_access_token(token, settings)
    if not payload:
        return None
    return payload.get("user_id")
