from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigInvalid
from .models import DesiredContainerSpec, HostBinding

# Docker's own container name grammar.
CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")
PROTOCOLS = {"tcp", "udp", "sctp"}


def validate_container_name(name: str) -> None:
    if not CONTAINER_NAME_RE.match(name):
        raise ValueError(
            "Invalid container name. Use letters, digits, '_', '.' or '-', starting with a letter or digit."
        )


def validate_port(value: str, field_name: str, allow_empty: bool = False) -> None:
    if allow_empty and value == "":
        return
    if not value.isdigit() or not 1 <= int(value) <= 65535:
        raise ValueError(f"{field_name} must be a number between 1 and 65535, got {value!r}.")


class PortBindingConfig(BaseModel):
    port: str = Field(..., description="Container port")
    protocol: str = Field("tcp", description="tcp|udp|sctp")
    host_ip: str = Field("", description="Host address to bind; empty means all")
    host_port: str = Field("", description="Host port; empty lets the engine pick one")

    @field_validator("port", "host_port", mode="before")
    @classmethod
    def _int_to_str(cls, v: Any) -> Any:
        # YAML hands us ints for unquoted ports.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("host_ip", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("port")
    @classmethod
    def _check_port(cls, v: str) -> str:
        validate_port(v, "port")
        return v

    @field_validator("host_port")
    @classmethod
    def _check_host_port(cls, v: str) -> str:
        validate_port(v, "host_port", allow_empty=True)
        return v

    @field_validator("protocol")
    @classmethod
    def _check_protocol(cls, v: str) -> str:
        v = v.lower()
        if v not in PROTOCOLS:
            raise ValueError(f"protocol must be one of {sorted(PROTOCOLS)}, got {v!r}.")
        return v

    @property
    def key(self) -> str:
        return f"{self.port}/{self.protocol}"


class ContainerConfig(BaseModel):
    name: str = Field(..., description="Unique container name")
    image: str = Field(..., min_length=1, description="Docker image reference (name:tag)")
    port_bindings: list[PortBindingConfig] = Field(default_factory=list)
    env: list[str] = Field(default_factory=list, description="KEY=VALUE entries")
    cmd: list[str] = Field(default_factory=list, description="Command; empty keeps the image default")

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        validate_container_name(v)
        return v

    @field_validator("port_bindings", "env", "cmd", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


class AppConfig(BaseModel):
    debug: bool = False
    update_check: bool = False
    remove_unwanted_containers: bool = False


class Config(BaseModel):
    app_config: AppConfig = Field(default_factory=AppConfig)
    containers: list[ContainerConfig] = Field(default_factory=list)

    @field_validator("app_config", mode="before")
    @classmethod
    def _none_to_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("containers", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def _unique_names(self) -> Config:
        seen: set[str] = set()
        for c in self.containers:
            if c.name in seen:
                raise ValueError(f"Duplicate container name: {c.name}")
            seen.add(c.name)
        return self


def parse_config(text: str, source: str = "<string>") -> Config:
    yaml = YAML(typ="safe", pure=True)
    try:
        data = yaml.load(text)
    except YAMLError as e:
        raise ConfigInvalid(f"{source}: invalid YAML: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigInvalid(f"{source}: top level must be a mapping")
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigInvalid(f"{source}: {e}") from e


def read_config(path: str | Path) -> Config:
    """Read and validate the configuration document at ``path``."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigInvalid(f"cannot read config {p}: {e}") from e
    return parse_config(text, source=str(p))


def to_desired_spec(c: ContainerConfig) -> DesiredContainerSpec:
    bindings: dict[str, list[HostBinding]] = {}
    for pb in c.port_bindings:
        bindings.setdefault(pb.key, []).append(HostBinding(host_ip=pb.host_ip, host_port=pb.host_port))
    return DesiredContainerSpec(
        name=c.name,
        image=c.image,
        exposed_ports=frozenset(bindings),
        port_bindings={k: tuple(v) for k, v in bindings.items()},
        env=tuple(c.env),
        cmd=tuple(c.cmd),
    )


def to_desired_specs(config: Config) -> list[DesiredContainerSpec]:
    """Desired specs in declaration order."""
    return [to_desired_spec(c) for c in config.containers]
