import uuid
from datetime import datetime, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from common.config import ALGORITHM, SECRET_KEY
from common.exceptions import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Could not validate credentials")

    exp = payload.get("exp")
    if exp is not None:
        exp_time = datetime.fromtimestamp(exp, tz=timezone.utc)
        if exp_time < datetime.now(timezone.utc):
            raise AuthenticationError("Token has expired")

    # The principal is a user id, stored in UUID columns
    try:
        payload["user_id"] = str(uuid.UUID(str(payload["user_id"])))
    except (KeyError, ValueError):
        raise AuthenticationError("Could not validate credentials")
    return payload


def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """Resolve the bearer credential to its claims; a principal is required."""
    if credentials is None:
        raise AuthenticationError("No token provided")
    return decode_token(credentials.credentials)


def optional_verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[dict]:
    """Like verify_token, but anonymous callers get None instead of a 401."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def principal_id(payload: Optional[dict]) -> Optional[str]:
    if not payload:
        return None
    return str(payload["user_id"])
