import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from subrelay.core.config import Settings
from subrelay.core.deps import get_settings_dep
from subrelay.core.errors import ConfigurationError


def require_api_key(
    x_api_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
) -> str:
    """Check the shared secret in the x-api-key header."""
    if not settings.client_api_key:
        raise ConfigurationError("Server configuration error")
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), settings.client_api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Forbidden", "status": 403},
        )
    return x_api_key
