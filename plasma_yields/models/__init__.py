from plasma_yields.models.base import Base
from plasma_yields.models.health import SourceHealthCheck
from plasma_yields.models.snapshots import PlasmaAggregate, PoolYieldSnapshot, SumcapSnapshot

__all__ = [
    "Base",
    "PlasmaAggregate",
    "PoolYieldSnapshot",
    "SourceHealthCheck",
    "SumcapSnapshot",
]
