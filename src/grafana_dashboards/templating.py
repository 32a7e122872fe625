"""
Dashboard JSON loading and templating-variable rewrites.

Dashboards may expose a ``namespace_filter`` and a ``workload_kinds`` textbox
variable. When a value is supplied for one of them, the variable's current
selection, query and options are pinned to that value before upload.
Dashboards that do not declare the variable are left alone.
"""
from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Optional

import structlog

log = structlog.get_logger(__name__)

NAMESPACE_FILTER_VAR = "namespace_filter"
WORKLOAD_KINDS_VAR = "workload_kinds"

IMPORT_MESSAGE = "Imported via grafana-dashboards"


class DashboardLoadError(ValueError):
    """Raised when a dashboard file is not a JSON object."""


def load_dashboard(path: Path) -> dict[str, Any]:
    """Read a dashboard definition from *path*.

    Raises ``OSError`` if the file cannot be opened and
    ``DashboardLoadError`` if it is not UTF-8 text holding a JSON object.
    """
    with path.open(encoding="utf-8") as f:
        try:
            data = json.load(f)
        except UnicodeDecodeError as exc:
            raise DashboardLoadError(f"{path} is not valid UTF-8: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise DashboardLoadError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DashboardLoadError(f"{path} does not contain a dashboard object")
    return data


def _variables(dashboard: dict[str, Any]) -> list[Any]:
    templating = dashboard.get("templating")
    if not isinstance(templating, dict):
        return []
    entries = templating.get("list")
    return entries if isinstance(entries, list) else []


def has_variable(dashboard: dict[str, Any], name: str) -> bool:
    return any(isinstance(v, dict) and v.get("name") == name for v in _variables(dashboard))


def set_variable(dashboard: dict[str, Any], name: str, value: str) -> bool:
    """Pin templating variable *name* to *value* in place.

    Returns ``False`` if the dashboard has no such variable.
    """
    found = False
    for entry in _variables(dashboard):
        if not isinstance(entry, dict) or entry.get("name") != name:
            continue
        current = entry.get("current")
        if not isinstance(current, dict):
            current = {}
        current["text"] = value
        current["value"] = value
        entry["current"] = current
        entry["query"] = value
        entry["options"] = [{"selected": True, "text": value, "value": value}]
        found = True
    if found:
        log.info("templating.variable_set", variable=name, value=value, dashboard=dashboard.get("uid"))
    return found


def apply_patches(
    dashboard: dict[str, Any],
    namespace_filter: Optional[str] = None,
    workload_kinds: Optional[str] = None,
) -> dict[str, Any]:
    """Return a copy of *dashboard* ready for upload.

    Non-empty patch values are written into the matching templating
    variables and ``id`` is cleared so Grafana matches on ``uid``.
    The input document is not modified.
    """
    patched = copy.deepcopy(dashboard)
    for name, value in ((NAMESPACE_FILTER_VAR, namespace_filter), (WORKLOAD_KINDS_VAR, workload_kinds)):
        if value:
            set_variable(patched, name, value)
    patched["id"] = None
    return patched


def build_import_payload(
    dashboard: dict[str, Any],
    folder_uid: str,
    overwrite: bool,
    message: str = IMPORT_MESSAGE,
) -> dict[str, Any]:
    """Wrap a dashboard in the ``POST /api/dashboards/db`` envelope."""
    return {
        "dashboard": dashboard,
        "folderUid": folder_uid,
        "overwrite": overwrite,
        "message": message,
    }
