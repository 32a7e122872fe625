"""
The four user-facing commands.

  status  — check connectivity and report the target folder's contents
  list    — list dashboards in the (existing) target folder
  import  — ensure the folder exists, then import every bundled dashboard
  delete  — after confirmation, delete every bundled dashboard by UID

Each command returns a process exit code. Requests are issued one at a time
in the order of ``DASHBOARDS``; per-dashboard failures are tallied and the
remaining dashboards are still processed.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

import structlog

from grafana_dashboards import console
from grafana_dashboards.client import GrafanaAPIError, GrafanaClient
from grafana_dashboards.config import Settings
from grafana_dashboards.models import (
    DASHBOARDS,
    DashboardDescriptor,
    Folder,
    ItemOutcome,
    Summary,
)
from grafana_dashboards.templating import (
    NAMESPACE_FILTER_VAR,
    WORKLOAD_KINDS_VAR,
    DashboardLoadError,
    apply_patches,
    build_import_payload,
    has_variable,
    load_dashboard,
)

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1

Confirm = Callable[[str], bool]


def ask_confirmation(prompt: str) -> bool:
    """Interactive yes/no prompt; anything but y/yes means no."""
    try:
        reply = input(f"{prompt} (y/N) ")
    except EOFError:
        return False
    return reply.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------

async def check_connection(client: GrafanaClient) -> bool:
    console.info("Testing connection to Grafana...")
    try:
        result = await client.get_org()
    except GrafanaAPIError as exc:
        console.error("Failed to connect to Grafana")
        console.raw(str(exc))
        return False
    if not result.ok:
        console.error("Failed to connect to Grafana")
        console.raw(result.raw or result.message)
        return False
    console.success(f"Connected to Grafana organization: {result.data.name}")
    return True


async def ensure_folder(client: GrafanaClient, title: str) -> Optional[Folder]:
    """Look up the folder by title and create it when missing."""
    folder = await client.find_folder(title)
    if folder is not None:
        console.success(f"Folder exists: {title} (UID: {folder.uid})")
        return folder

    console.info(f"Creating folder: {title}")
    result = await client.create_folder(title)
    if not result.ok:
        console.error("Failed to create folder")
        console.raw(result.raw or result.message)
        return None
    console.success(f"Folder created with UID: {result.data.uid}")
    return result.data


async def list_folder_dashboards(client: GrafanaClient, folder_uid: str) -> bool:
    result = await client.search_dashboards(folder_uid)
    if not result.ok:
        console.error("Failed to list dashboards")
        console.raw(result.raw or result.message)
        return False
    if not result.data:
        console.warning("No dashboards found in folder")
        return True
    console.success(f"Found {len(result.data)} dashboard(s):")
    for hit in result.data:
        print(f"  - {hit.title} (UID: {hit.uid})")
    return True


def _print_summary(title: str, verb: str, summary: Summary) -> None:
    console.header(title)
    console.success(f"Successfully {verb}: {summary.succeeded}")
    if summary.failed:
        console.error(f"Failed: {summary.failed}")
        for outcome in summary.details:
            if not outcome.ok:
                console.detail(f"{outcome.title}: {outcome.message}")


# ---------------------------------------------------------------------------
# status / list
# ---------------------------------------------------------------------------

async def cmd_status(settings: Settings, client: GrafanaClient) -> int:
    console.header("Grafana Connection Status")

    if not await check_connection(client):
        return EXIT_FAILURE

    console.blank()
    console.info(f"Checking folder: {settings.folder_title}")
    folder = await client.find_folder(settings.folder_title)
    if folder is None:
        console.warning("Folder does not exist")
        return EXIT_OK

    console.success(f"Folder exists (UID: {folder.uid})")
    console.blank()
    await list_folder_dashboards(client, folder.uid)
    return EXIT_OK


async def cmd_list(settings: Settings, client: GrafanaClient) -> int:
    console.header("List Dashboards")

    if not await check_connection(client):
        return EXIT_FAILURE

    folder = await client.find_folder(settings.folder_title)
    if folder is None:
        console.warning(f"Folder '{settings.folder_title}' not found")
        return EXIT_FAILURE

    if not await list_folder_dashboards(client, folder.uid):
        return EXIT_FAILURE
    return EXIT_OK


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------

async def import_one(
    settings: Settings,
    client: GrafanaClient,
    folder_uid: str,
    descriptor: DashboardDescriptor,
) -> ItemOutcome:
    path = settings.dashboard_dir / descriptor.file_name
    try:
        dashboard = load_dashboard(path)
    except FileNotFoundError:
        console.error(f"Dashboard file not found: {path}")
        return ItemOutcome(uid=descriptor.uid, title=descriptor.file_name, ok=False, message="file not found")
    except OSError as exc:
        console.error(f"Cannot read dashboard file {path}: {exc.strerror or exc}")
        return ItemOutcome(uid=descriptor.uid, title=descriptor.file_name, ok=False, message=str(exc))
    except DashboardLoadError as exc:
        console.error(str(exc))
        return ItemOutcome(uid=descriptor.uid, title=descriptor.file_name, ok=False, message=str(exc))

    title = str(dashboard.get("title") or descriptor.file_name)
    console.info(f"Importing: {title}")
    if dashboard.get("uid") != descriptor.uid:
        console.warning(f"  {descriptor.file_name} declares uid {dashboard.get('uid')!r}, expected {descriptor.uid!r}")
    if settings.namespace_filter and has_variable(dashboard, NAMESPACE_FILTER_VAR):
        console.info(f"  Setting {NAMESPACE_FILTER_VAR} to: {settings.namespace_filter}")
    if settings.workload_kinds and has_variable(dashboard, WORKLOAD_KINDS_VAR):
        console.info(f"  Setting {WORKLOAD_KINDS_VAR} to: {settings.workload_kinds}")

    patched = apply_patches(
        dashboard,
        namespace_filter=settings.namespace_filter,
        workload_kinds=settings.workload_kinds,
    )
    payload = build_import_payload(patched, folder_uid, settings.overwrite)

    try:
        result = await client.import_dashboard(payload)
    except GrafanaAPIError as exc:
        console.error(f"Failed to import: {title}")
        console.raw(str(exc))
        return ItemOutcome(uid=descriptor.uid, title=title, ok=False, message=str(exc))

    if not result.ok:
        console.error(f"Failed to import: {title}")
        console.raw(result.raw or result.message)
        return ItemOutcome(uid=descriptor.uid, title=title, ok=False, message=result.message)

    console.success(f"Imported: {title}")
    console.detail(f"UID: {result.data.uid}")
    console.detail(f"URL: {settings.grafana_url}{result.data.url}")
    return ItemOutcome(uid=result.data.uid, title=title, ok=True)


async def cmd_import(settings: Settings, client: GrafanaClient) -> int:
    console.header("Import Dashboards")

    if not await check_connection(client):
        return EXIT_FAILURE

    folder = await ensure_folder(client, settings.folder_title)
    if folder is None:
        console.error("Failed to get/create folder")
        return EXIT_FAILURE

    console.blank()
    console.info(f"Importing dashboards to folder: {settings.folder_title}")
    if settings.namespace_filter:
        console.info(f"Namespace filter will be set to: {settings.namespace_filter}")
    if settings.workload_kinds:
        console.info(f"Workload kinds will be set to: {settings.workload_kinds}")
    console.blank()

    outcomes = []
    for descriptor in DASHBOARDS:
        outcomes.append(await import_one(settings, client, folder.uid, descriptor))
        console.blank()

    summary = Summary.from_outcomes(outcomes)
    log.info("import.finished", succeeded=summary.succeeded, failed=summary.failed)
    _print_summary("Import Summary", "imported", summary)
    return EXIT_FAILURE if summary.failed else EXIT_OK


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

async def delete_one(client: GrafanaClient, uid: str) -> ItemOutcome:
    console.info(f"Deleting dashboard: {uid}")
    try:
        result = await client.delete_dashboard(uid)
    except GrafanaAPIError as exc:
        console.error(f"Failed to delete: {exc}")
        return ItemOutcome(uid=uid, title=uid, ok=False, message=str(exc))

    if not result.ok:
        console.error(f"Failed to delete: {result.message}")
        return ItemOutcome(uid=uid, title=uid, ok=False, message=result.message)
    if result.already_absent:
        console.warning(f"Dashboard not found: {uid} (already deleted?)")
        return ItemOutcome(uid=uid, title=uid, ok=True, message="not found")
    console.success(f"Deleted: {result.data}")
    return ItemOutcome(uid=uid, title=str(result.data), ok=True)


async def cmd_delete(
    settings: Settings,
    client: GrafanaClient,
    confirm: Confirm = ask_confirmation,
) -> int:
    console.header("Delete Dashboards")

    if not await check_connection(client):
        return EXIT_FAILURE

    console.blank()
    console.warning("This will delete the following dashboards:")
    for descriptor in DASHBOARDS:
        print(f"  - {descriptor.uid}")
    console.blank()

    if not await asyncio.to_thread(confirm, "Are you sure you want to continue?"):
        console.info("Aborted")
        return EXIT_OK

    console.blank()
    outcomes = []
    for descriptor in DASHBOARDS:
        outcomes.append(await delete_one(client, descriptor.uid))

    summary = Summary.from_outcomes(outcomes)
    log.info("delete.finished", succeeded=summary.succeeded, failed=summary.failed)
    console.blank()
    _print_summary("Delete Summary", "deleted", summary)
    return EXIT_FAILURE if summary.failed else EXIT_OK
