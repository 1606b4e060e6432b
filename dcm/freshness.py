from __future__ import annotations

import logging

from .docker_ops import ContainerEngine
from .errors import ImageNotResolved
from .models import DesiredContainerSpec, LocalImage

logger = logging.getLogger(__name__)


def normalize_reference(ref: str) -> str:
    """Add the implicit ``:latest`` tag the engine records for untagged refs."""
    if "@" in ref:
        return ref
    last = ref.rsplit("/", 1)[-1]
    return ref if ":" in last else f"{ref}:latest"


def resolve_image_id(images: list[LocalImage], ref: str) -> str | None:
    """Id of the local image ``ref`` points at, or None."""
    if "@" in ref:
        for img in images:
            if ref in img.repo_digests:
                return img.id
        return None
    wanted = {ref, normalize_reference(ref)}
    for img in images:
        if wanted.intersection(img.repo_tags):
            return img.id
    return None


class FreshnessChecker:
    def __init__(self, engine: ContainerEngine):
        self.engine = engine

    def is_up_to_date(self, engine_id: str, desired: DesiredContainerSpec) -> bool:
        """Pull ``desired.image`` and compare its id with the running one.

        The pull always happens, so a moved mutable tag is picked up even when
        the old image is cached. Raises ImageNotResolved if the reference
        cannot be found locally afterwards; that is not a stale verdict.
        """
        running_image_id = self.engine.inspect_container(engine_id).image_id

        self.engine.pull_image(desired.image)

        latest_image_id = resolve_image_id(self.engine.list_images(), desired.image)
        if latest_image_id is None:
            raise ImageNotResolved(f"could not find the latest image for {desired.image}")

        result = running_image_id == latest_image_id
        if result:
            logger.debug("Container %s is up to date", desired.name)
        else:
            logger.debug("Container %s is not up to date (%s != %s)", desired.name, running_image_id, latest_image_id)
        return result
