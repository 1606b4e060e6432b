"""Thin adapter over the Docker SDK.

Everything the reconciler and the stats aggregator know about the engine goes
through :class:`ContainerEngine`. Docker SDK and transport exceptions are
translated here into :mod:`dcm.errors`; nothing above this module imports
``docker``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Any, Iterator

import docker
import requests
import urllib3
from docker.errors import APIError, DockerException, InvalidArgument
from docker.errors import NotFound as DockerNotFound

from .errors import ComparisonAmbiguous, EngineError, EngineUnavailable, NameConflict, NotFound
from .models import ContainerSummary, DesiredContainerSpec, HostBinding, LocalImage, ObservedContainer
from .settings import settings

logger = logging.getLogger(__name__)


@contextmanager
def _engine_call(action: str, target: str, conflict: bool = False) -> Iterator[None]:
    try:
        yield
    except DockerNotFound as e:
        raise NotFound(f"{action} {target}: {e.explanation or e}") from e
    except APIError as e:
        if conflict and e.status_code == 409:
            raise NameConflict(f"{action} {target}: {e.explanation or e}") from e
        raise EngineError(f"{action} {target}: {e.explanation or e}") from e
    except InvalidArgument as e:
        raise EngineError(f"{action} {target}: {e}") from e
    # Streamed responses (pull progress) are read straight off urllib3, so its
    # read timeouts and broken connections arrive unwrapped.
    except (DockerException, requests.exceptions.RequestException, urllib3.exceptions.HTTPError) as e:
        raise EngineUnavailable(f"{action} {target}: {type(e).__name__}: {e}") from e


def _primary_name(names: list[str] | None) -> str:
    # Linked containers list extra names like "/other/alias"; the own name has a single slash.
    names = names or []
    for n in names:
        if n.count("/") == 1:
            return n[1:]
    return names[0].lstrip("/") if names else ""


def summary_from_list_row(row: dict[str, Any]) -> ContainerSummary:
    return ContainerSummary(
        id=row["Id"],
        name=_primary_name(row.get("Names")),
        image=row.get("Image") or "",
        image_id=row.get("ImageID") or "",
        state=row.get("State") or "",
    )


def _parse_port_bindings(raw: Any, container: str) -> dict[str, tuple[HostBinding, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ComparisonAmbiguous(f"{container}: PortBindings is {type(raw).__name__}, expected a mapping")
    out: dict[str, tuple[HostBinding, ...]] = {}
    for port, entries in raw.items():
        if entries is None:
            out[port] = ()
            continue
        if not isinstance(entries, list) or not all(isinstance(b, dict) for b in entries):
            raise ComparisonAmbiguous(f"{container}: bindings for {port} are not a list of mappings")
        out[port] = tuple(
            HostBinding(host_ip=b.get("HostIp") or "", host_port=str(b.get("HostPort") or "")) for b in entries
        )
    return out


def observed_from_inspect(attrs: dict[str, Any]) -> ObservedContainer:
    """Normalize an inspect payload; raise rather than guess on odd shapes."""
    name = (attrs.get("Name") or "").lstrip("/")
    config = attrs.get("Config") or {}
    host_config = attrs.get("HostConfig") or {}

    exposed = config.get("ExposedPorts")
    if exposed is not None and not isinstance(exposed, dict):
        raise ComparisonAmbiguous(f"{name}: ExposedPorts is {type(exposed).__name__}, expected a mapping")

    cmd = config.get("Cmd")
    if cmd is not None and not isinstance(cmd, list):
        raise ComparisonAmbiguous(f"{name}: Cmd is {type(cmd).__name__}, expected a list")

    return ObservedContainer(
        id=attrs["Id"],
        name=name,
        image=config.get("Image") or "",
        image_id=attrs.get("Image") or "",
        exposed_ports=frozenset(exposed or {}),
        port_bindings=_parse_port_bindings(host_config.get("PortBindings"), name),
        cmd=tuple(cmd) if cmd is not None else None,
        env=tuple(config.get("Env") or ()),
        state=(attrs.get("State") or {}).get("Status", ""),
    )


def image_from_list_row(row: dict[str, Any]) -> LocalImage:
    return LocalImage(
        id=row["Id"],
        repo_tags=tuple(row.get("RepoTags") or ()),
        repo_digests=tuple(row.get("RepoDigests") or ()),
    )


class ContainerEngine:
    """Synchronous request/response access to one Docker engine.

    Clients are created lazily so the process can start (and serve /reload)
    while the daemon is still down.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        pull_client: docker.DockerClient | None = None,
        timeout_s: int = settings.docker_timeout_s,
        pull_timeout_s: int = settings.pull_timeout_s,
        max_pool_size: int = max(10, settings.stats_workers),
    ) -> None:
        self._client = client
        self._pull_client = pull_client
        self.timeout_s = timeout_s
        self.pull_timeout_s = pull_timeout_s
        self.max_pool_size = max_pool_size
        self._lock = Lock()

    def _api(self, pull: bool = False) -> docker.APIClient:
        with self._lock:
            if pull:
                if self._pull_client is None:
                    with _engine_call("connect", "docker"):
                        self._pull_client = docker.from_env(timeout=self.pull_timeout_s)
                return self._pull_client.api
            if self._client is None:
                with _engine_call("connect", "docker"):
                    self._client = docker.from_env(timeout=self.timeout_s, max_pool_size=self.max_pool_size)
            return self._client.api

    def ping(self) -> bool:
        try:
            with _engine_call("ping", "docker"):
                return bool(self._api().ping())
        except EngineError:
            return False

    # -- observed state -------------------------------------------------

    def list_containers(self) -> list[ContainerSummary]:
        """Every container on the host, running or not."""
        with _engine_call("list", "containers"):
            rows = self._api().containers(all=True)
        return [summary_from_list_row(r) for r in rows]

    def find_container(self, name: str) -> ContainerSummary | None:
        for c in self.list_containers():
            if c.name == name:
                return c
        return None

    def container_id_by_name(self, name: str) -> str:
        found = self.find_container(name)
        if found is None:
            raise NotFound(f"container {name} not found")
        return found.id

    def inspect_container(self, container_id: str) -> ObservedContainer:
        with _engine_call("inspect", container_id):
            attrs = self._api().inspect_container(container_id)
        return observed_from_inspect(attrs)

    # -- lifecycle ------------------------------------------------------

    def create_container(self, spec: DesiredContainerSpec) -> str:
        api = self._api()
        ports = [tuple(p.split("/", 1)) for p in sorted(spec.exposed_ports)]
        port_bindings = {
            port: [(b.host_ip, b.host_port) for b in bindings]
            for port, bindings in spec.port_bindings.items()
            if bindings
        }
        with _engine_call("create", spec.name, conflict=True):
            host_config = api.create_host_config(port_bindings=port_bindings or None)
            res = api.create_container(
                image=spec.image,
                name=spec.name,
                command=list(spec.cmd) or None,
                environment=list(spec.env) or None,
                ports=ports or None,
                host_config=host_config,
            )
        for w in res.get("Warnings") or []:
            logger.warning("create %s: %s", spec.name, w)
        return res["Id"]

    def start_container(self, container_id: str) -> None:
        # Starting a running container answers 304, which the SDK does not raise on.
        with _engine_call("start", container_id):
            self._api().start(container_id)

    def stop_container(self, container_id: str) -> None:
        with _engine_call("stop", container_id):
            self._api().stop(container_id)

    def remove_container(self, container_id: str) -> None:
        with _engine_call("remove", container_id):
            self._api().remove_container(container_id)

    # -- images ---------------------------------------------------------

    def pull_image(self, ref: str) -> None:
        """Pull ``ref`` and block until the engine reports completion."""
        with _engine_call("pull", ref):
            for chunk in self._api(pull=True).pull(ref, stream=True, decode=True):
                # The progress stream is drained only to learn when (and whether) the pull ended.
                if isinstance(chunk, dict) and chunk.get("error"):
                    raise EngineError(f"pull {ref}: {chunk['error']}")
        logger.debug("Pulled %s", ref)

    def list_images(self) -> list[LocalImage]:
        with _engine_call("list", "images"):
            rows = self._api().images()
        return [image_from_list_row(r) for r in rows]

    # -- stats ----------------------------------------------------------

    def container_stats(self, container_id: str) -> dict[str, Any]:
        """One non-streaming stats sample (precpu_stats filled in by the engine)."""
        with _engine_call("stats", container_id):
            return self._api().stats(container_id, stream=False)
