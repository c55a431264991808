# src/api/dependencies/auth.py
from typing import Optional
from fastapi import Request, Security, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

security = HTTPBearer(auto_error=False)

def verify_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> bool:
    """Verify the API token. Without configured tokens the API is open."""
    tokens = request.app.state.container.settings.bearer_tokens_list
    if not tokens:
        return True
    if credentials is None or credentials.credentials not in tokens:
        raise HTTPException(
            status_code=401,
            detail="Invalid API token",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return True
