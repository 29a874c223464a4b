import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from violationhub.aggregation.aggregator import aggregate_reports
from violationhub.aggregation.filters import FilterSet
from violationhub.cache.snapshot_cache import SnapshotCache, SnapshotRefreshError
from violationhub.config import ApiSettings, debug_enabled, object_identity_keys_from_env
from violationhub.metrics.collector import build_registry
from violationhub.storage.object_source import AzureBlobObjectSource
from violationhub.telemetry import init_telemetry, emit_aggregation_telemetry

# --- 1. SETUP LOGGING ---
logging.basicConfig(
    level=logging.DEBUG if debug_enabled() else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
audit_logger = logging.getLogger("violationhub.api")

tags_metadata = [
    {
        "name": "Violations",
        "description": "Policy violations of all clusters, merged and filtered.",
    },
    {
        "name": "System",
        "description": "Health checks and metrics.",
    },
]

app = FastAPI(
    title="violationhub",
    description="""
    **Compliance-wide view** over Gatekeeper policy violations.

    * Each cluster uploads a grouped violation report into blob storage.
    * This API merges the reports of all clusters on every request.
    * Filters narrow the result by cluster, template, constraint, severity and object identity.
    """,
    version="1.0.0",
    openapi_tags=tags_metadata,
)
app.add_middleware(GZipMiddleware, minimum_size=1024)

init_telemetry()

# Lazily created so that importing this module needs no storage credentials
_cache_instance: Optional[SnapshotCache] = None
_registry_instance: Optional[CollectorRegistry] = None


def get_snapshot_cache() -> SnapshotCache:
    global _cache_instance
    if _cache_instance is None:
        settings = ApiSettings.from_env()
        source = AzureBlobObjectSource(
            connection_string=settings.connection_string,
            container_name=settings.container_name,
        )
        _cache_instance = SnapshotCache(source)
    return _cache_instance


def get_metrics_registry(cache: SnapshotCache = Depends(get_snapshot_cache)) -> CollectorRegistry:
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = build_registry(cache, object_identity_keys_from_env())
    return _registry_instance


# --- 2. MIDDLEWARE: AUDIT TRAIL ---
@app.middleware("http")
async def audit_middleware(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    if request.url.path != "/health":
        audit_logger.info(
            f"METHOD={request.method} PATH={request.url.path} "
            f"STATUS={response.status_code} "
            f"CLIENT={request.client.host if request.client else '-'} "
            f"DURATION={process_time:.4f}s"
        )
    return response


# --- ENDPOINTS ---

@app.get("/violations", tags=["Violations"])
@app.get("/v2/violations", tags=["Violations"], include_in_schema=False)
def get_violations(request: Request, cache: SnapshotCache = Depends(get_snapshot_cache)):
    """
    Returns the AggregatedReport over all clusters.

    Every filter is repeatable: `cluster_identity.<key>`, `template_kind`,
    `constraint_name`, `severity`, `object_identity.<key>`.
    """
    start_time = time.perf_counter()

    try:
        reports = cache.get_reports()
    except SnapshotRefreshError as e:
        audit_logger.error(f"REFRESH_ERROR: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    filter_set = FilterSet.from_query(request.query_params.multi_items())
    result = aggregate_reports(reports, filter_set)
    result.sort()

    emit_aggregation_telemetry(
        latency_ms=int((time.perf_counter() - start_time) * 1000),
        cluster_count=len(result.cluster_identities),
        template_count=len(result.templates),
        group_count=sum(
            len(rc.violation_groups) for rt in result.templates for rc in rt.constraints
        ),
        filtered=not filter_set.is_open(),
    )
    return JSONResponse(content=result.to_dict())


@app.get("/metrics", tags=["System"])
def metrics(registry: CollectorRegistry = Depends(get_metrics_registry)):
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["System"])
def health():
    return {"status": "online"}
