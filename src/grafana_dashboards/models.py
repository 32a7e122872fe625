"""
Pydantic models for Grafana API responses, dashboard descriptors and
command results.
"""
from __future__ import annotations

from functools import reduce
from typing import Any, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Bundled dashboards
# ---------------------------------------------------------------------------


class DashboardDescriptor(BaseModel):
    """A bundled dashboard file and the UID Grafana keeps for it."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    uid: str


# Order matters: import and delete walk this table front to back.
DASHBOARDS: tuple[DashboardDescriptor, ...] = (
    DashboardDescriptor(file_name="grafana-dashboard.json", uid="workload-resource-analysis"),
    DashboardDescriptor(file_name="grafana-dashboard-docs.json", uid="workload-resource-analysis-docs"),
    DashboardDescriptor(file_name="grafana-dashboard-workload.json", uid="workload-resource-workload"),
    DashboardDescriptor(file_name="grafana-dashboard-workload-docs.json", uid="workload-resource-workload-docs"),
)


# ---------------------------------------------------------------------------
# Grafana API response models
# ---------------------------------------------------------------------------


class Org(BaseModel):
    id: int
    name: str = ""


class Folder(BaseModel):
    uid: str
    title: str
    id: Optional[int] = None


class DashboardHit(BaseModel):
    """One row of an ``/api/search`` result."""

    uid: str
    title: str
    url: str = ""
    folderTitle: Optional[str] = None
    tags: list[str] = []


class ImportedDashboard(BaseModel):
    uid: str
    url: str = ""
    status: str = ""
    version: Optional[int] = None


# ---------------------------------------------------------------------------
# Raw response and typed results
# ---------------------------------------------------------------------------


class ApiResponse(BaseModel):
    """A single Grafana HTTP response: status, parsed JSON body and raw text."""

    status_code: int
    body: Any = None
    text: str = ""

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "ApiResponse":
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None
        return cls(status_code=response.status_code, body=body, text=response.text)

    def message(self) -> str:
        """Grafana's own error message, falling back to the raw body."""
        if isinstance(self.body, dict) and self.body.get("message"):
            return str(self.body["message"])
        return self.text.strip() or f"HTTP {self.status_code}"


class ApiSuccess(BaseModel):
    kind: Literal["success"] = "success"
    status_code: int
    data: Any = None
    already_absent: bool = False

    @property
    def ok(self) -> bool:
        return True


class ApiFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    status_code: int
    message: str
    raw: str = ""

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_response(cls, response: ApiResponse) -> "ApiFailure":
        return cls(status_code=response.status_code, message=response.message(), raw=response.text)


ApiResult = Union[ApiSuccess, ApiFailure]


# ---------------------------------------------------------------------------
# Command results
# ---------------------------------------------------------------------------


class ItemOutcome(BaseModel):
    uid: str
    title: str
    ok: bool
    message: str = ""


class Summary(BaseModel):
    model_config = ConfigDict(frozen=True)

    succeeded: int = 0
    failed: int = 0
    details: tuple[ItemOutcome, ...] = ()

    def add(self, outcome: ItemOutcome) -> "Summary":
        return Summary(
            succeeded=self.succeeded + (1 if outcome.ok else 0),
            failed=self.failed + (0 if outcome.ok else 1),
            details=(*self.details, outcome),
        )

    @classmethod
    def from_outcomes(cls, outcomes: list[ItemOutcome]) -> "Summary":
        return reduce(cls.add, outcomes, cls())
