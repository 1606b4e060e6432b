"""Declarative Container Manager (DCM).

Single-host reconciler for Docker containers that:
 - converges containers to a YAML-declared desired state on demand
 - recreates containers whose ports, image or command drifted
 - optionally removes containers that are no longer declared
 - optionally recreates containers whose image tag moved in the registry
 - exports per-container runtime metrics in the Prometheus text format

No scheduler, no cluster: one process, one engine, one operator.
"""

__version__ = "0.3.0"
