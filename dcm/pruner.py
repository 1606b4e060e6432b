from __future__ import annotations

from typing import Iterable

from . import db
from .errors import DcmError, PruneFailed
from .models import ContainerSummary, DesiredContainerSpec
from .orchestrator import LifecycleOrchestrator


class Pruner:
    """Removes every observed container whose name is not desired.

    No dry-run and no confirmation; callers opt in through
    ``app_config.remove_unwanted_containers``.
    """

    def __init__(self, orchestrator: LifecycleOrchestrator):
        self.orchestrator = orchestrator

    def prune(self, observed: Iterable[ContainerSummary], desired: Iterable[DesiredContainerSpec]) -> list[str]:
        wanted = {d.name for d in desired}
        removed: list[str] = []
        failures: dict[str, Exception] = {}
        for c in observed:
            if c.name in wanted:
                continue
            db.log_event("INFO", f"Container {c.name} ({c.id}) not desired, removing", container_name=c.name)
            try:
                self.orchestrator.delete(c.id)
            except DcmError as e:
                failures[c.name] = e
                db.log_event("ERROR", f"Removing unwanted container failed: {e}", container_name=c.name)
                continue
            removed.append(c.name)
        if failures:
            raise PruneFailed(removed, failures)
        return removed
