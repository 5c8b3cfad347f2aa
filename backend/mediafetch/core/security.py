"""HTTP Basic authentication for the fetch and download routes."""
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from mediafetch.core.config import Settings
from mediafetch.core.logging import get_logger

logger = get_logger(__name__)

_basic = HTTPBasic(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Settings the running application was created with."""
    return request.app.state.settings


def require_basic_auth(
    credentials: HTTPBasicCredentials | None = Depends(_basic),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless it carries the configured credentials.

    Raises:
        HTTPException: 401 with a Basic challenge so browsers prompt for login
    """
    if not app_settings.AUTH_ENABLED:
        return

    if credentials is not None:
        user_ok = secrets.compare_digest(
            credentials.username.encode("utf-8"),
            app_settings.BASIC_AUTH_USER.encode("utf-8"),
        )
        pass_ok = secrets.compare_digest(
            credentials.password.encode("utf-8"),
            app_settings.BASIC_AUTH_PASS.encode("utf-8"),
        )
        if user_ok and pass_ok:
            return
        logger.warning(f"Rejected credentials for user {credentials.username!r}")

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": f'Basic realm="{app_settings.AUTH_REALM}"'},
    )
