"""Tests for the status / list / import / delete commands (mocked HTTP layer)."""
from __future__ import annotations

import json
import shutil
import threading
from typing import Any

import httpx
import pytest
import respx

from grafana_dashboards.client import GrafanaClient
from grafana_dashboards.commands import (
    EXIT_FAILURE,
    EXIT_OK,
    cmd_delete,
    cmd_import,
    cmd_list,
    cmd_status,
)
from grafana_dashboards.config import DEFAULT_DASHBOARD_DIR, AuthMode, Settings
from grafana_dashboards.models import DASHBOARDS

BASE = "https://grafana.test"
FOLDER = {"id": 5, "uid": "rca-folder", "title": "Resource Consumption Analysis"}

_ORG_OK = httpx.Response(200, json={"id": 1, "name": "Main Org."})


def _refuse(message: str):
    def _raise(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(message, request=request)
    return _raise


def _settings(**kwargs: Any) -> Settings:
    base: dict[str, Any] = dict(grafana_url=BASE, auth_mode=AuthMode.API_KEY, api_key="glsa_test")
    base.update(kwargs)
    return Settings(**base)


def _echo_import(request: httpx.Request) -> httpx.Response:
    uid = json.loads(request.content)["dashboard"]["uid"]
    return httpx.Response(200, json={"id": 1, "uid": uid, "url": f"/d/{uid}/slug", "status": "success", "version": 1})


def _imported_payloads(route: respx.Route) -> list[dict]:
    return [json.loads(call.request.content) for call in route.calls]


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

class TestStatus:
    @respx.mock
    @pytest.mark.asyncio
    async def test_folder_present(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        respx.route(method="GET", path="/api/search").mock(
            return_value=httpx.Response(200, json=[{"uid": "workload-resource-analysis", "title": "Namespace Overview"}])
        )
        async with GrafanaClient(_settings()) as client:
            code = await cmd_status(_settings(), client)
        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "Main Org." in out
        assert "Folder exists (UID: rca-folder)" in out
        assert "Namespace Overview (UID: workload-resource-analysis)" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_folder_missing(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[]))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_status(_settings(), client)
        assert code == EXIT_OK
        assert "Folder does not exist" in capsys.readouterr().out

    @respx.mock
    @pytest.mark.asyncio
    async def test_not_connected(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=httpx.Response(401, json={"message": "invalid API key"}))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_status(_settings(), client)
        out = capsys.readouterr().out
        assert code == EXIT_FAILURE
        assert "Failed to connect to Grafana" in out
        assert "invalid API key" in out
        assert respx.calls.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_unreachable(self, capsys):
        respx.get(f"{BASE}/api/org").mock(side_effect=_refuse("name resolution failed"))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_status(_settings(), client)
        assert code == EXIT_FAILURE
        assert "name resolution failed" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------

class TestList:
    @respx.mock
    @pytest.mark.asyncio
    async def test_requires_folder(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[]))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_list(_settings(), client)
        assert code == EXIT_FAILURE
        assert "Folder 'Resource Consumption Analysis' not found" in capsys.readouterr().out

    @respx.mock
    @pytest.mark.asyncio
    async def test_empty_folder(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        search = respx.route(method="GET", path="/api/search").mock(return_value=httpx.Response(200, json=[]))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_list(_settings(), client)
        assert code == EXIT_OK
        assert "No dashboards found in folder" in capsys.readouterr().out
        assert search.calls.last.request.url.params["folderUIDs"] == "rca-folder"


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------

class TestImport:
    @respx.mock
    @pytest.mark.asyncio
    async def test_imports_all_in_order(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        async with GrafanaClient(_settings()) as client:
            code = await cmd_import(_settings(), client)
        out = capsys.readouterr().out

        assert code == EXIT_OK
        assert not any(
            call.request.method == "POST" and call.request.url.path == "/api/folders"
            for call in respx.calls
        )
        payloads = _imported_payloads(imports)
        assert [p["dashboard"]["uid"] for p in payloads] == [d.uid for d in DASHBOARDS]
        for p in payloads:
            assert p["folderUid"] == "rca-folder"
            assert p["overwrite"] is True
            assert p["dashboard"]["id"] is None
            assert p["message"] == "Imported via grafana-dashboards"
        assert "Resource Consumption Analysis - Namespace Overview" in out
        assert f"URL: {BASE}/d/workload-resource-analysis/slug" in out
        assert "Successfully imported: 4" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_creates_missing_folder(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[]))
        create = respx.post(f"{BASE}/api/folders").mock(
            return_value=httpx.Response(200, json={"id": 9, "uid": "created-uid", "title": "Resource Consumption Analysis"})
        )
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        async with GrafanaClient(_settings()) as client:
            code = await cmd_import(_settings(), client)
        assert code == EXIT_OK
        assert create.call_count == 1
        assert all(p["folderUid"] == "created-uid" for p in _imported_payloads(imports))
        assert "Folder created with UID: created-uid" in capsys.readouterr().out

    @respx.mock
    @pytest.mark.asyncio
    async def test_folder_creation_failure_is_fatal(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[]))
        respx.post(f"{BASE}/api/folders").mock(return_value=httpx.Response(403, json={"message": "Access denied"}))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_import(_settings(), client)
        assert code == EXIT_FAILURE
        assert respx.calls.call_count == 3
        assert "Access denied" in capsys.readouterr().out

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_first_file_still_imports_rest(self, tmp_path, capsys):
        for descriptor in DASHBOARDS[1:]:
            shutil.copy(DEFAULT_DASHBOARD_DIR / descriptor.file_name, tmp_path / descriptor.file_name)
        settings = _settings(dashboard_dir=tmp_path)

        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        async with GrafanaClient(settings) as client:
            code = await cmd_import(settings, client)
        out = capsys.readouterr().out

        assert code == EXIT_FAILURE
        assert imports.call_count == 3
        assert "Dashboard file not found" in out
        assert "Successfully imported: 3" in out
        assert "Failed: 1" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_undecodable_file_still_imports_rest(self, tmp_path, capsys):
        (tmp_path / DASHBOARDS[0].file_name).write_bytes(b'{"title": "\xff\xfe"}')
        for descriptor in DASHBOARDS[1:]:
            shutil.copy(DEFAULT_DASHBOARD_DIR / descriptor.file_name, tmp_path / descriptor.file_name)
        settings = _settings(dashboard_dir=tmp_path)

        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        async with GrafanaClient(settings) as client:
            code = await cmd_import(settings, client)
        out = capsys.readouterr().out

        assert code == EXIT_FAILURE
        assert imports.call_count == 3
        assert "is not valid UTF-8" in out
        assert "Successfully imported: 3" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_unreadable_path_still_imports_rest(self, tmp_path, capsys):
        (tmp_path / DASHBOARDS[0].file_name).mkdir()
        for descriptor in DASHBOARDS[1:]:
            shutil.copy(DEFAULT_DASHBOARD_DIR / descriptor.file_name, tmp_path / descriptor.file_name)
        settings = _settings(dashboard_dir=tmp_path)

        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        async with GrafanaClient(settings) as client:
            code = await cmd_import(settings, client)
        out = capsys.readouterr().out

        assert code == EXIT_FAILURE
        assert imports.call_count == 3
        assert "Cannot read dashboard file" in out
        assert "Failed: 1" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_rejection_prints_response(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        def _reject_first(request: httpx.Request) -> httpx.Response:
            if json.loads(request.content)["dashboard"]["uid"] == "workload-resource-analysis":
                return httpx.Response(412, json={"message": "A dashboard with the same uid already exists", "status": "name-exists"})
            return _echo_import(request)

        respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_reject_first)
        settings = _settings(overwrite=False)
        async with GrafanaClient(settings) as client:
            code = await cmd_import(settings, client)
        out = capsys.readouterr().out
        assert code == EXIT_FAILURE
        assert "Failed to import: Resource Consumption Analysis - Namespace Overview" in out
        assert "name-exists" in out
        assert "Successfully imported: 3" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_overwrite_is_sent(self):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        settings = _settings(overwrite=False)
        async with GrafanaClient(settings) as client:
            await cmd_import(settings, client)
        assert all(p["overwrite"] is False for p in _imported_payloads(imports))

    @respx.mock
    @pytest.mark.asyncio
    async def test_template_patches_applied(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        respx.get(f"{BASE}/api/folders").mock(return_value=httpx.Response(200, json=[FOLDER]))
        imports = respx.post(f"{BASE}/api/dashboards/db").mock(side_effect=_echo_import)
        settings = _settings(namespace_filter="^prod-", workload_kinds="StatefulSet|DaemonSet")
        async with GrafanaClient(settings) as client:
            await cmd_import(settings, client)

        by_uid = {p["dashboard"]["uid"]: p["dashboard"] for p in _imported_payloads(imports)}
        overview = {v["name"]: v for v in by_uid["workload-resource-analysis"]["templating"]["list"]}
        assert overview["namespace_filter"]["current"]["value"] == "^prod-"
        assert overview["namespace_filter"]["options"] == [{"selected": True, "text": "^prod-", "value": "^prod-"}]
        assert overview["workload_kinds"]["query"] == "StatefulSet|DaemonSet"
        assert by_uid["workload-resource-analysis-docs"]["templating"]["list"] == []
        assert "Setting namespace_filter to: ^prod-" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

class TestDelete:
    def _mock_deletes(self, not_found: str = "") -> dict[str, respx.Route]:
        routes = {}
        for descriptor in DASHBOARDS:
            if descriptor.uid == not_found:
                response = httpx.Response(404, json={"message": "Dashboard not found"})
            else:
                response = httpx.Response(200, json={"title": descriptor.uid.title(), "message": "deleted", "id": 1})
            routes[descriptor.uid] = respx.delete(f"{BASE}/api/dashboards/uid/{descriptor.uid}").mock(return_value=response)
        return routes

    @respx.mock
    @pytest.mark.asyncio
    async def test_not_found_counts_as_success(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        routes = self._mock_deletes(not_found="workload-resource-analysis")
        async with GrafanaClient(_settings()) as client:
            code = await cmd_delete(_settings(), client, confirm=lambda _prompt: True)
        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert all(route.call_count == 1 for route in routes.values())
        assert "Dashboard not found: workload-resource-analysis" in out
        assert "Successfully deleted: 4" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_declined_confirmation_changes_nothing(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        async with GrafanaClient(_settings()) as client:
            code = await cmd_delete(_settings(), client, confirm=lambda _prompt: False)
        assert code == EXIT_OK
        assert respx.calls.call_count == 1
        assert "Aborted" in capsys.readouterr().out

    @respx.mock
    @pytest.mark.asyncio
    async def test_continues_after_failure(self, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        routes = self._mock_deletes()
        routes["workload-resource-analysis-docs"].mock(return_value=httpx.Response(403, json={"message": "Access denied"}))
        async with GrafanaClient(_settings()) as client:
            code = await cmd_delete(_settings(), client, confirm=lambda _prompt: True)
        out = capsys.readouterr().out
        assert code == EXIT_FAILURE
        assert all(route.call_count == 1 for route in routes.values())
        assert "Failed to delete: Access denied" in out
        assert "Successfully deleted: 3" in out

    @respx.mock
    @pytest.mark.asyncio
    async def test_interactive_prompt(self, monkeypatch, capsys):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        monkeypatch.setattr("builtins.input", lambda _prompt: "n")
        async with GrafanaClient(_settings()) as client:
            code = await cmd_delete(_settings(), client)
        assert code == EXIT_OK
        assert respx.calls.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_prompt_runs_off_the_event_loop(self):
        respx.get(f"{BASE}/api/org").mock(return_value=_ORG_OK)
        loop_thread = threading.get_ident()
        prompt_threads = []

        def _confirm(_prompt: str) -> bool:
            prompt_threads.append(threading.get_ident())
            return False

        async with GrafanaClient(_settings()) as client:
            code = await cmd_delete(_settings(), client, confirm=_confirm)
        assert code == EXIT_OK
        assert prompt_threads and prompt_threads[0] != loop_thread
