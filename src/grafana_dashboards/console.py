"""Human-readable terminal output (stdout). Structured logs go to stderr via structlog."""
from __future__ import annotations

import json

# ── Colors ───────────────────────────────────────────────────────────────────
GREEN  = "\033[0;32m"
RED    = "\033[0;31m"
YELLOW = "\033[1;33m"
BLUE   = "\033[0;34m"
RESET  = "\033[0m"

RULE = "═" * 64


def header(title: str) -> None:
    print(f"\n{BLUE}{RULE}{RESET}")
    print(f"{BLUE}  {title}{RESET}")
    print(f"{BLUE}{RULE}{RESET}\n")


def success(message: str) -> None:
    print(f"{GREEN}✓ {message}{RESET}")


def error(message: str) -> None:
    print(f"{RED}✗ {message}{RESET}")


def warning(message: str) -> None:
    print(f"{YELLOW}⚠ {message}{RESET}")


def info(message: str) -> None:
    print(f"{BLUE}ℹ {message}{RESET}")


def detail(message: str) -> None:
    print(f"         {message}")


def blank() -> None:
    print()


def raw(text: str) -> None:
    """Print a server response, pretty-printed when it is JSON."""
    try:
        print(json.dumps(json.loads(text), indent=2))
    except ValueError:
        print(text)
