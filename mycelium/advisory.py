"""Best-effort follow-up steps.

A failing advisory step is logged and recorded, and never fails the operation
that scheduled it.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from mycelium.console import is_dry_run, log_verbose, warn


@dataclass
class AdvisoryStep:
    name: str
    run: Callable[[], Any]


@dataclass
class AdvisoryOutcome:
    name: str
    ok: bool
    error: Optional[str] = None


def run_advisory(steps: Iterable[AdvisoryStep],
                 args: Optional[argparse.Namespace] = None) -> list[AdvisoryOutcome]:
    outcomes: list[AdvisoryOutcome] = []
    for step in steps:
        if is_dry_run(args):
            log_verbose(f"[dry-run] Would run: {step.name}", args)
            outcomes.append(AdvisoryOutcome(name=step.name, ok=True))
            continue
        try:
            step.run()
        except Exception as exc:  # advisory contract: record, never raise
            warn(f"{step.name} skipped: {exc}")
            outcomes.append(AdvisoryOutcome(name=step.name, ok=False, error=str(exc)))
            continue
        log_verbose(f"{step.name}: done", args)
        outcomes.append(AdvisoryOutcome(name=step.name, ok=True))
    return outcomes
