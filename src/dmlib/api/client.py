"""Async REST client for the datamodels V2 API.

Thin CRUD wrapper around one shared :class:`httpx.AsyncClient`.  The same
HTTP session (base URL, Authorization header, connection pool) is reused by
:class:`~dmlib.upload.uploader.StagedUploader` and
:class:`~dmlib.build.poller.BuildPoller`, so one client per script run is
enough and it is safe to use from concurrent tasks.

Usage::

    config = load_client_config()
    async with DatamodelsClient(config) as client:
        datamodel = await client.post("datamodels", {"title": "sales"})
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from dmlib.config import ClientConfig
from dmlib.errors import APIError

logger = logging.getLogger(__name__)

API_VERSION = "v2"


class DatamodelsClient:
    """GET, POST, PATCH and DELETE operations on ``/api/v2/*``."""

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._http = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"Authorization": config.authorization},
            timeout=config.request_timeout,
            transport=transport,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        """The underlying HTTP session, rooted at the server address."""
        return self._http

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Perform a GET on ``api/v2/<endpoint>`` with optional query string."""
        resp = await self._http.get(self.api_path(endpoint), params=params)
        return self._decode(resp)

    async def post(self, endpoint: str, body: Any = None) -> Any:
        """Perform a POST with *body* as the JSON payload."""
        resp = await self._http.post(self.api_path(endpoint), json=body)
        return self._decode(resp)

    async def patch(self, endpoint: str, body: Any) -> Any:
        """Perform a PATCH with *body* as the JSON payload."""
        resp = await self._http.patch(self.api_path(endpoint), json=body)
        return self._decode(resp)

    async def delete(self, endpoint: str) -> Any:
        resp = await self._http.delete(self.api_path(endpoint))
        return self._decode(resp)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> DatamodelsClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def api_path(endpoint: str) -> str:
        """Map an endpoint (no leading ``/``) to its path under the API root."""
        return f"/api/{API_VERSION}/{endpoint.lstrip('/')}"

    def _decode(self, resp: httpx.Response) -> Any:
        raise_for_status(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()


def raise_for_status(resp: httpx.Response) -> None:
    """Raise :class:`APIError` for a 4xx/5xx response, logging it first."""
    if resp.is_success:
        return
    try:
        body = resp.json()
        detail = body.get("detail") or body.get("error") or resp.text
        if isinstance(detail, dict):
            detail = detail.get("message", str(detail))
    except Exception:
        detail = resp.text
    logger.error(
        "%s %s -> %d: %s",
        resp.request.method,
        resp.request.url.path,
        resp.status_code,
        detail,
    )
    raise APIError(resp.status_code, str(detail))
