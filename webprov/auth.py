# webprov/auth.py
from typing import Optional
from fastapi import Header, HTTPException, Query

from . import config


def _strip(tok: Optional[str]) -> Optional[str]:
    if not tok:
        return None
    tok = tok.strip()
    if tok.lower().startswith("bearer "):
        return tok[7:].strip()
    return tok


async def require_key(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
    api_key: Optional[str] = Query(default=None),
):
    if not config.API_KEY:
        raise HTTPException(status_code=500, detail="API key not configured on server")

    token = _strip(x_api_key) or _strip(authorization) or _strip(api_key)
    if not token:
        raise HTTPException(status_code=401, detail="API key required")
    if token != config.API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")
