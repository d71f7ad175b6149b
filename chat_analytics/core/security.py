# Admin access gate

from typing import Optional
import hmac
import json

from fastapi import Request
import structlog

from chat_analytics.core.config import AuthMode
from chat_analytics.core.errors import Unauthorized

logger = structlog.get_logger()

ADMIN_TOKEN_HEADER = "x-admin-token"


class AdminAccessGate:
    """
    Shared-secret gate for the admin API.

    AuthMode.DISABLED is the local-development mode and must be chosen
    explicitly. In AuthMode.SHARED_SECRET a blank secret never opens the API:
    the gate rejects every request and ensure_configured() fails startup.
    """

    def __init__(self, token: Optional[str], mode: AuthMode = AuthMode.SHARED_SECRET):
        self.mode = AuthMode(mode)
        self.token = token if token and token.strip() else None

    @property
    def configured(self) -> bool:
        return self.mode is AuthMode.DISABLED or self.token is not None

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ValueError("ADMIN_TOKEN must be set when ADMIN_AUTH_MODE is shared_secret")

    def authorize(self, presented: Optional[str]) -> bool:
        if self.mode is AuthMode.DISABLED:
            return True
        if not presented or self.token is None:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self.token.encode("utf-8"))


async def presented_token(request: Request) -> Optional[str]:
    """Token from header, then query string, then JSON body"""
    token = request.headers.get(ADMIN_TOKEN_HEADER)
    if token:
        return token

    token = request.query_params.get("token")
    if token:
        return token

    body = await request.body()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("token"), str):
        return payload["token"]
    return None


async def require_admin(request: Request) -> None:
    """Dependency guarding every admin endpoint"""
    gate: AdminAccessGate = request.app.state.admin_gate
    if gate.mode is AuthMode.DISABLED:
        return

    if not gate.authorize(await presented_token(request)):
        logger.warning("admin_unauthorized", path=request.url.path)
        raise Unauthorized()
