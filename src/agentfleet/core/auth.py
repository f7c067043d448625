"""Bearer API key check for the fleet API."""

import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

bearer = HTTPBearer()


async def verify_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(bearer),
) -> str:
    """Compare the bearer token with the key the app was started with."""
    expected = request.app.state.settings.api_key
    if not secrets.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
