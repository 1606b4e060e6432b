from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ReconcileReport


class DcmError(Exception):
    """Base class for every error this package raises on purpose."""


class EngineError(DcmError):
    """The container engine rejected a request."""


class EngineUnavailable(EngineError):
    """The engine could not be reached, or the call ran out of time."""


class NotFound(EngineError):
    """A container or image does not exist (any more)."""


class NameConflict(EngineError):
    """Create collided with a container that already bears the name."""


class ImageNotResolved(DcmError):
    """No local image matches a reference after pulling it."""


class ConfigInvalid(DcmError):
    pass


class ComparisonAmbiguous(DcmError):
    """Desired and observed fields cannot be compared structurally."""


class ContainerStatsError(DcmError):
    def __init__(self, container_id: str, cause: BaseException | str):
        self.container_id = container_id
        self.cause = cause
        super().__init__(f"could not fetch stats for container {container_id}: {cause}")


class StatsCollectionPartial(DcmError):
    """One or more stats queries failed; reported as a single batch."""

    def __init__(self, errors: list[ContainerStatsError]):
        self.errors = list(errors)
        super().__init__(f"Errors occurred: {[str(e) for e in self.errors]}")


class PruneFailed(DcmError):
    def __init__(self, removed: list[str], failures: dict[str, Exception]):
        self.removed = list(removed)
        self.failures = dict(failures)
        detail = "; ".join(f"{name}: {exc}" for name, exc in self.failures.items())
        super().__init__(f"failed to remove {len(self.failures)} unwanted container(s): {detail}")


class ReconcileFailed(DcmError):
    """At least one container could not be converged during a pass.

    The pass itself ran to the end; ``report`` holds what did succeed.
    """

    def __init__(self, report: ReconcileReport):
        self.report = report
        lines = [f"{name}: {type(exc).__name__}: {exc}" for name, exc in report.failures.items()]
        super().__init__("Reconciliation failed for:\n" + "\n".join(lines))
