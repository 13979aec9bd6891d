"""Terminal output helpers shared by the engine and the command layer."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any, NoReturn, Optional

# ---------------------------------------------------------------------------
# Terminal colors (respects NO_COLOR and non-TTY)
# ---------------------------------------------------------------------------

_USE_COLOR = (
    sys.stdout.isatty()
    and os.environ.get("NO_COLOR") is None
    and os.environ.get("TERM") != "dumb"
)


def _ansi(code: str) -> str:
    return f"\033[{code}m" if _USE_COLOR else ""


class C:
    """ANSI escape sequences, empty strings when color is disabled."""
    RESET = _ansi("0")
    BOLD = _ansi("1")
    DIM = _ansi("2")
    RED = _ansi("31")
    GREEN = _ansi("32")
    YELLOW = _ansi("33")
    BLUE = _ansi("34")
    MAGENTA = _ansi("35")
    CYAN = _ansi("36")
    BOLD_RED = _ansi("1;31")
    BOLD_GREEN = _ansi("1;32")
    BOLD_YELLOW = _ansi("1;33")
    BOLD_CYAN = _ansi("1;36")
    BOLD_WHITE = _ansi("1;37")


# ---------------------------------------------------------------------------
# Args helpers
# ---------------------------------------------------------------------------


def is_verbose(args: Optional[argparse.Namespace]) -> bool:
    return bool(getattr(args, "verbose", False))


def is_dry_run(args: Optional[argparse.Namespace]) -> bool:
    return bool(getattr(args, "dry_run", False))


def wants_diff(args: Optional[argparse.Namespace]) -> bool:
    return bool(getattr(args, "diff", False))


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def section_header(title: str) -> None:
    width = 50
    rule = "─" * max(1, width - len(title) - 5)
    print(f"\n{C.BOLD_CYAN}─── {title} {rule}{C.RESET}")


def summary_line(label: str, count: int, detail: str = "") -> None:
    extra = f"  {C.DIM}({detail}){C.RESET}" if detail else ""
    print(f"  {label:15s} {C.BOLD}{count}{C.RESET}{extra}")


def log(msg: str) -> None:
    print(f"  {msg}")


def log_verbose(msg: str, args: Optional[argparse.Namespace]) -> None:
    if is_verbose(args):
        print(f"  {C.DIM}[verbose] {msg}{C.RESET}")


def warn(msg: str) -> None:
    print(f"  {C.BOLD_YELLOW}Warning:{C.RESET} {msg}")


def error(msg: str) -> None:
    print(f"{C.BOLD_RED}Error:{C.RESET} {msg}")


def fail(msg: str) -> NoReturn:
    """Print an error line and exit with status 1. Command layer only."""
    error(msg)
    sys.exit(1)


def confirm(prompt: str, default: bool = True) -> bool:
    suffix = f"{C.BOLD}[Y/n]{C.RESET}" if default else f"{C.BOLD}[y/N]{C.RESET}"
    answer = input(f"{prompt} {suffix} ").strip().lower()
    if not answer:
        return default
    return answer in ("y", "yes")


def state_badge(state: str) -> str:
    colors: dict[str, Any] = {
        "enabled": C.GREEN,
        "disabled": C.YELLOW,
        "deleted": C.RED,
    }
    return f"{colors.get(state, '')}{state}{C.RESET}"
