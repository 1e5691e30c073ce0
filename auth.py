from fastapi import HTTPException, Request, status
import os
import secrets
import logging

logger = logging.getLogger("gym_app")

# Shared secret for the backend function endpoints. Unset = endpoints are open.
FUNCTIONS_SECRET = os.getenv("FUNCTIONS_SECRET", "")


async def require_internal_secret(request: Request):
    """Authenticate scheduler/admin callers via the X-Internal-Secret header."""
    if not FUNCTIONS_SECRET:
        return

    provided = request.headers.get("X-Internal-Secret")
    if not provided:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Internal-Secret header")

    if not secrets.compare_digest(provided, FUNCTIONS_SECRET):
        logger.info(f"AUTH: Rejected call to {request.url.path} with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid internal secret")
