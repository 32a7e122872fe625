"""
macOS Keychain lookup for Grafana credentials.

Entries live under the generic-password service ``grafana-dashboards``; the
account names the value (``grafana-url``, ``grafana-api-key``,
``grafana-password``). Elsewhere than macOS no lookup is attempted and the
resolver falls through to the config file.
"""
from __future__ import annotations

import subprocess
import sys
from typing import Optional

import structlog

log = structlog.get_logger(__name__)

SERVICE = "grafana-dashboards"
_SECURITY_BIN = "/usr/bin/security"


def keychain_available() -> bool:
    return sys.platform == "darwin"


def _find_password(account: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [_SECURITY_BIN, "find-generic-password", "-s", SERVICE, "-a", account, "-w"],
        capture_output=True,
        text=True,
        check=False,
    )


def retrieve_secret(account: str) -> Optional[str]:
    """Return the Keychain value stored for *account*, or ``None``.

    Read-only: this tool never stores or removes Keychain entries.
    """
    if not keychain_available():
        return None
    try:
        result = _find_password(account)
    except FileNotFoundError:
        log.debug("keychain.unavailable", account=account)
        return None
    value = result.stdout.strip() if result.returncode == 0 else ""
    if not value:
        log.debug("keychain.not_found", account=account)
        return None
    log.info("keychain.retrieved", account=account)
    return value
