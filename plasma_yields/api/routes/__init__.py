from plasma_yields.api.routes.aggregate import router as aggregate_router
from plasma_yields.api.routes.chain_metrics import router as chain_metrics_router
from plasma_yields.api.routes.sources import router as sources_router
from plasma_yields.api.routes.sumcap import router as sumcap_router
from plasma_yields.api.routes.yields import router as yields_router

__all__ = ["aggregate_router", "chain_metrics_router", "sources_router", "sumcap_router", "yields_router"]
