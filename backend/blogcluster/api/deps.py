import json
import logging
from typing import Any

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security.api_key import APIKeyHeader

from ..core.config import Settings
from ..core.errors import PayloadError
from ..services.automation import SECRET_HEADER, AutomationClient
from ..services.ingestion import authenticate

ingest_secret_header = APIKeyHeader(name=SECRET_HEADER, auto_error=False)
logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def resolve_current_user_id(request: Request) -> str | None:
    """
    Identity comes from the trusted header set by the auth proxy in front of us.

    Returns None when the request is anonymous.
    """
    settings: Settings = request.app.state.settings
    value = (request.headers.get(settings.USER_ID_HEADER) or "").strip()
    return value or None


def require_user_id(request: Request) -> str:
    user_id = resolve_current_user_id(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def verify_ingest_secret(
    secret: str | None = Security(ingest_secret_header),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """
    Shared-secret check for engine webhooks.

    A missing server-side secret rejects everything rather than opening the door.
    """
    if not authenticate(secret, settings.INGEST_SECRET):
        logger.warning(
            "Rejected ingest request",
            extra={"step": "ingest_auth", "status_code": 403},
        )
        raise HTTPException(status_code=403, detail="Forbidden")


def get_automation_client(settings: Settings = Depends(get_app_settings)) -> AutomationClient:
    return AutomationClient(settings)


async def read_ingest_body(
    request: Request,
    _: None = Depends(verify_ingest_secret),
) -> Any:
    """
    JSON body of an engine webhook.

    Read by hand so the secret is checked first; an unauthenticated caller
    never learns whether its body would have parsed.
    """
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise PayloadError("body must be valid JSON") from exc
