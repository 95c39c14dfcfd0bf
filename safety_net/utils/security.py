import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from safety_net.core.config import Settings, get_settings

cron_bearer = HTTPBearer(auto_error=False)


def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(cron_bearer),
    cfg: Settings = Depends(get_settings),
) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>` when a secret is configured."""
    expected = cfg.CRON_SECRET
    if not expected:
        return
    supplied = credentials.credentials if credentials else ""
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        logging.warning("Rejected cron trigger with missing or invalid bearer secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
