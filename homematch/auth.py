# homematch/auth.py
"""Request authentication dependencies."""
import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Request

from . import config
from .db import get_client
from .errors import PostgrestError, ServiceUnavailableError
from .postgrest import PostgrestClient
from .utils import logger


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request,
                     authorization: Optional[str] = Header(None),
                     client: PostgrestClient = Depends(get_client)) -> Dict[str, Any]:
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        user = client.get_user(token)
    except PostgrestError as e:
        logger.error("Auth lookup failed: %s", e.message)
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not user or not user.get("id"):
        raise HTTPException(status_code=401, detail="Unauthorized")
    request.state.user = user
    return user


def require_admin(authorization: Optional[str] = Header(None),
                  x_admin_token: Optional[str] = Header(None)) -> None:
    if not config.ADMIN_API_TOKEN:
        raise ServiceUnavailableError("ADMIN_API_TOKEN not set")
    supplied = x_admin_token or bearer_token(authorization) or ""
    if not secrets.compare_digest(supplied, config.ADMIN_API_TOKEN):
        raise HTTPException(status_code=401, detail="Unauthorized")
