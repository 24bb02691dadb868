"""Haut.AI client: typed request wrapper around the SaaS analysis API."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from bloom.errors import RemoteError, is_retryable

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://saas.haut.ai"


def parse_body(text: str) -> Any:
    """Parse a response body without ever raising.

    Empty bodies become ``None``, valid JSON becomes the decoded object and
    anything else is returned as the raw text.
    """
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class HautClient:
    """Single point of contact with the remote API.

    Holds no per-scan state, so one instance is shared by every concurrent
    scan in the process.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, *, has_body: bool) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
    ) -> tuple[int, Any]:
        """Call ``path`` on the vendor API and return ``(status, parsed_body)``.

        Raises ``RemoteError`` for any non-2xx status, and for transport
        failures (502 on connection errors, 504 on timeouts).
        """
        has_body = body is not None
        try:
            resp = await self._http.request(
                method,
                path,
                headers=self._headers(has_body=has_body),
                content=json.dumps(body) if has_body else None,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Haut %s %s timed out: %s", method, path, exc)
            raise RemoteError(504, None, message=f"Haut API timeout on {path}") from exc
        except httpx.TransportError as exc:
            logger.warning("Haut %s %s transport failure: %s", method, path, exc)
            raise RemoteError(502, None, message=f"Haut API unreachable: {exc}") from exc

        data = parse_body(resp.text)
        if not resp.is_success:
            logger.warning(
                "Haut %s %s -> %d (retryable=%s)",
                method, path, resp.status_code, is_retryable(resp.status_code),
            )
            raise RemoteError(resp.status_code, data)
        return resp.status_code, data

    async def send_signed(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        content: bytes,
    ) -> tuple[int, str]:
        """Send raw bytes to a pre-signed storage URL.

        The signed URL carries its own authorization, so only the
        vendor-supplied headers are sent. The status is returned, not raised.
        """
        try:
            resp = await self._http.request(method, url, headers=headers, content=content)
        except httpx.TransportError as exc:
            logger.warning("Signed upload transport failure: %s", exc)
            return 0, str(exc)
        return resp.status_code, resp.text

    async def fetch_algorithms(self) -> list[dict[str, Any]]:
        """GET the algorithm-version dictionary (``/api/v1/dicts/algorithms/``)."""
        _, data = await self.request("/api/v1/dicts/algorithms/")
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("results"), list):
            return data["results"]
        return []
