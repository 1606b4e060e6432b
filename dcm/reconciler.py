from __future__ import annotations

import logging
from threading import Lock

from . import db
from .comparator import compare
from .config import Config, to_desired_specs
from .docker_ops import ContainerEngine
from .errors import DcmError, PruneFailed, ReconcileFailed
from .freshness import FreshnessChecker
from .models import DecisionKind, DesiredContainerSpec, ReconcileReport, ReconciliationDecision
from .orchestrator import LifecycleOrchestrator
from .pruner import Pruner

logger = logging.getLogger(__name__)


class Reconciler:
    """Converges the engine to the desired configuration, one pass per call.

    Containers are independent: a failure aborts the remaining steps for that
    container only, the pass moves on, and all failures are raised together
    as ReconcileFailed once every spec has been tried.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        orchestrator: LifecycleOrchestrator | None = None,
        checker: FreshnessChecker | None = None,
        pruner: Pruner | None = None,
    ):
        self.engine = engine
        self.orchestrator = orchestrator or LifecycleOrchestrator(engine)
        self.checker = checker or FreshnessChecker(engine)
        self.pruner = pruner or Pruner(self.orchestrator)
        # Passes never overlap: a recreate must not race a prune of the same name.
        self._lock = Lock()

    def reconcile(self, config: Config) -> ReconcileReport:
        with self._lock:
            desired = to_desired_specs(config)
            report = ReconcileReport()

            if config.app_config.remove_unwanted_containers:
                self._prune(desired, report)

            for spec in desired:
                try:
                    self._converge(spec, config.app_config.update_check, report)
                except DcmError as e:
                    report.failures[spec.name] = e
                    db.log_event("ERROR", f"Reconcile failed: {type(e).__name__}: {e}", container_name=spec.name)

            if report.failures:
                raise ReconcileFailed(report)
            db.log_event("INFO", f"Reconciled {len(desired)} container(s)")
            return report

    def _prune(self, desired: list[DesiredContainerSpec], report: ReconcileReport) -> None:
        try:
            observed = self.engine.list_containers()
        except DcmError as e:
            report.failures["<prune>"] = e
            db.log_event("ERROR", f"Listing containers for pruning failed: {e}")
            return
        try:
            removed = self.pruner.prune(observed, desired)
        except PruneFailed as e:
            removed = e.removed
            report.failures.update(e.failures)
        for name in removed:
            report.pruned.append(name)
            report.decisions[name] = ReconciliationDecision.remove_pruned()

    def _converge(self, spec: DesiredContainerSpec, update_check: bool, report: ReconcileReport) -> None:
        existing = self.engine.find_container(spec.name)
        created = recreated = False

        if existing is None:
            logger.info("Container %s not found, creating it", spec.name)
            created = self.orchestrator.ensure(spec)
            # ensure() finds the name taken only if something else created it meanwhile.
            decision = ReconciliationDecision.create() if created else ReconciliationDecision.noop()
            if created:
                report.created.append(spec.name)
                db.log_event("INFO", f"Container created from {spec.image}", container_name=spec.name)
        else:
            observed = self.engine.inspect_container(existing.id)
            decision = compare(spec, observed)
            if decision.kind is DecisionKind.RECREATE:
                for field in decision.mismatched:
                    logger.debug("Container %s %s does not match", spec.name, field)
                db.log_event(
                    "INFO",
                    f"Configuration does not match ({', '.join(decision.mismatched)}), recreating",
                    container_name=spec.name,
                )
                recreated = self.orchestrator.recreate(observed.id, spec)
                report.recreated.append(spec.name)
            else:
                logger.debug("Config for container %s already up to date", spec.name)
        report.decisions[spec.name] = decision

        # A container made in this pass already runs the freshly resolved image.
        if update_check and existing is not None and not (created or recreated):
            if not self.checker.is_up_to_date(existing.id, spec):
                db.log_event("INFO", "Image is not up to date, recreating", container_name=spec.name)
                self.orchestrator.recreate(existing.id, spec)
                report.refreshed.append(spec.name)
                report.decisions[spec.name] = ReconciliationDecision.recreate(reason="image-stale")

        # Declared-but-stopped is drift too, so start is issued on every path.
        engine_id = self.engine.container_id_by_name(spec.name)
        self.orchestrator.start(engine_id)
        report.started.append(spec.name)
        logger.info("Container %s ensured", spec.name)
