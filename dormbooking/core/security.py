from typing import Any, Dict

from jose import jwt

from ..config import get_settings

ALGORITHM = "HS256"


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[ALGORITHM],
        audience=settings.jwt_audience,
    )


def create_access_token(data: Dict[str, Any]) -> str:
    """Sign a token the way the hosted auth provider does; used by tooling and tests."""
    settings = get_settings()
    to_encode = data.copy()
    to_encode.setdefault("aud", settings.jwt_audience)
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=ALGORITHM)
