from __future__ import annotations

from .errors import ComparisonAmbiguous
from .models import DesiredContainerSpec, ObservedContainer, PortBindings, ReconciliationDecision

# Compared in this order; every mismatch is collected.
COMPARED_FIELDS = ("exposed_ports", "port_bindings", "image", "cmd")


def _bound(bindings: PortBindings) -> dict[str, tuple]:
    # A port listed without any host binding publishes nothing.
    return {port: tuple(b) for port, b in bindings.items() if b}


def compare(desired: DesiredContainerSpec, observed: ObservedContainer) -> ReconciliationDecision:
    """Decide whether ``observed`` already satisfies ``desired``.

    Environment variables are not compared: the engine adds its own (PATH,
    image ENV lines) and there is no way to tell those apart from variables
    an operator removed from the config. Env drift alone never recreates.

    An empty ``desired.cmd`` means "keep whatever the image runs".
    """
    if desired.name != observed.name:
        raise ComparisonAmbiguous(f"cannot compare desired {desired.name!r} with observed {observed.name!r}")

    mismatched: list[str] = []
    if frozenset(desired.exposed_ports) != frozenset(observed.exposed_ports):
        mismatched.append("exposed_ports")
    if _bound(desired.port_bindings) != _bound(observed.port_bindings):
        mismatched.append("port_bindings")
    if desired.image != observed.image:
        mismatched.append("image")
    if desired.cmd and tuple(desired.cmd) != tuple(observed.cmd or ()):
        mismatched.append("cmd")

    if mismatched:
        return ReconciliationDecision.recreate(tuple(mismatched))
    return ReconciliationDecision.noop()
