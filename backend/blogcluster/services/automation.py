# backend/blogcluster/services/automation.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from ..core.config import Settings

logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Ingest-Secret"


@dataclass
class EngineResponse:
    ok: bool
    status_code: Optional[int]
    body: Any

    def error_text(self, limit: int) -> str:
        if isinstance(self.body, str):
            text = self.body
        elif self.body is None:
            text = ""
        else:
            text = str(self.body)
        return text[:limit]


def build_callback_url(
    headers: Mapping[str, str],
    public_base_url: str | None,
    path: str,
    fallback_base_url: str | None = None,
) -> str:
    """
    Absolute URL the engine should POST results to.

    Forwarded headers win (tunnels, reverse proxies), then the configured
    public base URL, then the base URL the request itself arrived on.
    """
    proto = (headers.get("x-forwarded-proto") or "").split(",")[0].strip()
    host = (headers.get("x-forwarded-host") or "").split(",")[0].strip()
    if proto and host:
        base = f"{proto}://{host}"
    elif public_base_url:
        base = public_base_url
    else:
        base = fallback_base_url or ""
    return base.rstrip("/") + "/" + path.lstrip("/")


class AutomationClient:
    """
    Thin client for the workflow-automation engine's start webhooks.

    Every request carries the shared secret header. Responses are never
    interpreted beyond success/failure; bodies are kept for error messages
    (JSON when possible, text otherwise).
    """

    name = "automation"

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self.keywords_url = settings.AUTOMATION_KEYWORDS_URL
        self.outline_url = settings.AUTOMATION_OUTLINE_URL
        self.timeout = settings.AUTOMATION_TIMEOUT_SECONDS
        self._secret = settings.outbound_secret
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            SECRET_HEADER: self._secret,
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    def start_keywords(self, payload: Dict[str, Any]) -> EngineResponse:
        return self._post(self.keywords_url, payload, step="start_keywords")

    def start_outline(self, payload: Dict[str, Any]) -> EngineResponse:
        return self._post(self.outline_url, payload, step="start_outline")

    def _post(self, url: str | None, payload: Dict[str, Any], *, step: str) -> EngineResponse:
        job_id = payload.get("jobId")
        if not url:
            logger.warning(
                "Automation engine URL not configured",
                extra={"job_id": job_id, "step": step},
            )
            return EngineResponse(ok=False, status_code=None, body="automation engine URL not configured")

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning(
                "Automation engine request failed: %s",
                exc.__class__.__name__,
                extra={"job_id": job_id, "step": step},
            )
            return EngineResponse(ok=False, status_code=None, body=f"request error: {exc}")

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text

        ok = resp.is_success
        log = logger.info if ok else logger.warning
        log(
            "Automation engine responded",
            extra={"job_id": job_id, "step": step, "status_code": resp.status_code},
        )
        return EngineResponse(ok=ok, status_code=resp.status_code, body=body)
