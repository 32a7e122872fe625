"""
Async HTTP client for the Grafana REST API.

All endpoints use: <grafana_url>/api/<path>
Authentication: Authorization: Bearer <api key>, or HTTP basic auth.

``call`` issues exactly one request and never raises on HTTP status; the
endpoint methods read Grafana's body shape and return ``ApiSuccess`` or
``ApiFailure``. Only transport failures raise ``GrafanaAPIError``.
"""
from __future__ import annotations

import time
from typing import Any, Optional

import httpx
import structlog

from grafana_dashboards.config import AuthMode, Settings
from grafana_dashboards.models import (
    ApiFailure,
    ApiResponse,
    ApiResult,
    ApiSuccess,
    DashboardHit,
    Folder,
    ImportedDashboard,
    Org,
)

log = structlog.get_logger(__name__)


class GrafanaAPIError(Exception):
    """Raised when Grafana cannot be reached or answers in an unusable shape."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class GrafanaClient:
    """Async context-manager wrapper around the Grafana HTTP API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.grafana_url + "/api/"
        self._headers = {"Content-Type": "application/json", "Accept": "application/json"}
        self._auth: Optional[httpx.BasicAuth] = None
        if settings.auth_mode is AuthMode.API_KEY:
            self._headers["Authorization"] = f"Bearer {settings.api_key}"
        else:
            self._auth = httpx.BasicAuth(settings.username or "", settings.password or "")
        self._verify = not settings.insecure
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "GrafanaClient":
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            auth=self._auth,
            verify=self._verify,
            timeout=self._settings.timeout,
        )
        return self

    async def __aexit__(self, *_: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client_or_raise(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GrafanaClient must be used as an async context manager")
        return self._client

    async def call(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[dict[str, str]] = None,
    ) -> ApiResponse:
        """Issue a single request against ``/api/<path>`` and return the raw response."""
        client = self._client_or_raise()
        path = path.lstrip("/")
        t0 = time.monotonic()
        try:
            response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            log.warning("grafana.transport_error", method=method, path=path, error=str(exc))
            raise GrafanaAPIError(f"Request to {self._base_url}{path} failed: {exc}") from exc
        elapsed = round((time.monotonic() - t0) * 1000)

        log.info(
            "grafana.api_call",
            method=method,
            path=path,
            status=response.status_code,
            elapsed_ms=elapsed,
        )
        return ApiResponse.from_httpx(response)

    # ------------------------------------------------------------------
    # Organisation
    # ------------------------------------------------------------------

    async def get_org(self) -> ApiResult:
        """Connectivity probe: the current organisation, if credentials are accepted."""
        response = await self.call("GET", "org")
        if isinstance(response.body, dict) and "id" in response.body:
            return ApiSuccess(status_code=response.status_code, data=Org.model_validate(response.body))
        return ApiFailure.from_response(response)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    async def find_folder(self, title: str) -> Optional[Folder]:
        """Return the folder whose title matches exactly, or ``None``."""
        response = await self.call("GET", "folders")
        if not isinstance(response.body, list):
            raise GrafanaAPIError(
                f"Failed to list folders: {response.message()}",
                status_code=response.status_code,
            )
        for item in response.body:
            if isinstance(item, dict) and item.get("title") == title:
                return Folder.model_validate(item)
        return None

    async def create_folder(self, title: str) -> ApiResult:
        response = await self.call("POST", "folders", json={"title": title})
        if isinstance(response.body, dict) and "uid" in response.body:
            return ApiSuccess(status_code=response.status_code, data=Folder.model_validate(response.body))
        return ApiFailure.from_response(response)

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    async def search_dashboards(self, folder_uid: str) -> ApiResult:
        """List dashboards stored directly in *folder_uid*."""
        response = await self.call(
            "GET",
            "search",
            params={"folderUIDs": folder_uid, "type": "dash-db"},
        )
        if isinstance(response.body, list):
            hits = [DashboardHit.model_validate(item) for item in response.body]
            return ApiSuccess(status_code=response.status_code, data=hits)
        return ApiFailure.from_response(response)

    async def import_dashboard(self, payload: dict[str, Any]) -> ApiResult:
        """Create or update a dashboard from an import envelope."""
        response = await self.call("POST", "dashboards/db", json=payload)
        if isinstance(response.body, dict) and "uid" in response.body:
            return ApiSuccess(
                status_code=response.status_code,
                data=ImportedDashboard.model_validate(response.body),
            )
        return ApiFailure.from_response(response)

    async def delete_dashboard(self, uid: str) -> ApiResult:
        """Delete a dashboard by UID. A dashboard that is already gone counts as deleted."""
        response = await self.call("DELETE", f"dashboards/uid/{uid}")
        body = response.body
        if isinstance(body, dict) and "title" in body:
            return ApiSuccess(status_code=response.status_code, data=body["title"])
        message = response.message()
        if "not found" in message.lower() or (response.status_code == 404 and not response.text.strip()):
            return ApiSuccess(status_code=response.status_code, data=message, already_absent=True)
        return ApiFailure.from_response(response)
