"""Shared HTTP helpers for the REST-backed providers."""

import base64
import html
import re
from typing import Any

import httpx
import structlog

from opsctl.errors import ProviderRequestFailed

log = structlog.get_logger(__name__)

TIMEOUT = 30

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_BLOCK_END_RE = re.compile(r"</(p|div|li|h[1-6])>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def basic_auth(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


def base_url(value: str | None, fallback: str = "") -> str:
    return (value or fallback).strip().rstrip("/")


def strip_html(text: str) -> str:
    """Flatten an HTML fragment to plain text: line breaks for <br>/block ends, tags dropped."""
    text = _BR_RE.sub("\n", text)
    text = _BLOCK_END_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text).replace("\xa0", " ").strip()


def get_json(provider: str, url: str, headers: dict[str, str], params: dict[str, str] | None = None) -> Any:
    log.debug("provider request", provider=provider, url=url)
    try:
        response = httpx.get(
            url,
            headers={"Accept": "application/json", **headers},
            params=params or {},
            timeout=TIMEOUT,
        )
    except httpx.HTTPError as exc:
        raise ProviderRequestFailed(f"{provider}: request to {url} failed: {exc}", provider=provider) from exc

    status = response.status_code
    if status in (401, 403):
        raise ProviderRequestFailed(
            f"{provider} API returned {status} for {url}. Check the {provider} credentials in your environment.",
            provider=provider,
            status=status,
        )
    if response.is_error:
        raise ProviderRequestFailed(
            f"{provider}: request failed ({status} {response.reason_phrase}) for {url}: {response.text[:500]}",
            provider=provider,
            status=status,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderRequestFailed(
            f"{provider}: invalid JSON from {url}", provider=provider, status=status
        ) from exc
