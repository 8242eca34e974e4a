from typing import Optional

from fastapi import Header, HTTPException, status

from proxybid.utils import log

logger = log.get_logger(__name__)


async def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity as forwarded by the upstream gateway in ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


async def optional_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None
