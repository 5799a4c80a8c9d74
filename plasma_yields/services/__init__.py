# Services package
from plasma_yields.services.aggregation_service import AggregationService, floor_to_hour
from plasma_yields.services.health_service import HealthProbe
from plasma_yields.services.sumcap_service import SumcapSyncService

__all__ = [
    "AggregationService",
    "HealthProbe",
    "SumcapSyncService",
    "floor_to_hour",
]
