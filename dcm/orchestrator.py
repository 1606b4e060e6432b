from __future__ import annotations

import logging

from .docker_ops import ContainerEngine
from .errors import NotFound
from .models import DesiredContainerSpec

logger = logging.getLogger(__name__)


class LifecycleOrchestrator:
    """Stop → remove → create → start, one named container at a time.

    Nothing here retries: a failed step propagates to the caller, and a
    recreate that fails after the remove leaves the container absent.
    """

    def __init__(self, engine: ContainerEngine):
        self.engine = engine

    def ensure(self, desired: DesiredContainerSpec) -> bool:
        """Create the container unless one already bears the name. Returns created."""
        if self.engine.find_container(desired.name) is not None:
            logger.debug("Container %s already exists", desired.name)
            return False
        self.engine.create_container(desired)
        return True

    def recreate(self, engine_id: str, desired: DesiredContainerSpec) -> bool:
        self.delete(engine_id)
        # Names are unique per engine, so remove has to finish before create.
        self.engine.create_container(desired)
        return True

    def delete(self, engine_id: str) -> None:
        """Stop and remove; a container that is already stopped or gone is fine."""
        try:
            self.engine.stop_container(engine_id)
        except NotFound:
            logger.debug("Container %s already gone before stop", engine_id)
        try:
            self.engine.remove_container(engine_id)
        except NotFound:
            logger.debug("Container %s already gone before remove", engine_id)

    def start(self, engine_id: str) -> None:
        self.engine.start_container(engine_id)
