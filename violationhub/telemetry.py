"""
Telemetry
---------
Azure Application Insights via OpenTelemetry. Only counts and latencies are
emitted, never violation payloads or object identities.
"""
import os
import logging

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry.trace import get_current_span

logger = logging.getLogger("violationhub.telemetry")


def init_telemetry() -> bool:
    """
    Initialize Azure Application Insights via OpenTelemetry.
    Returns False (and does nothing) when no connection string is configured.
    """
    connection_string = os.getenv("VIOLATIONHUB_APPINSIGHTS_CONNECTION_STRING")

    if not connection_string:
        return False  # Telemetry disabled (local / tests)

    configure_azure_monitor(
        connection_string=connection_string
    )
    logger.info("Azure Monitor telemetry enabled")
    return True


def emit_aggregation_telemetry(
    latency_ms: int,
    cluster_count: int,
    template_count: int,
    group_count: int,
    filtered: bool,
):
    """
    Emit a single span event per aggregation.
    Safe to call without an active span.
    """
    assert isinstance(latency_ms, int), "latency_ms must be int"
    assert isinstance(filtered, bool), "filtered must be bool"

    span = get_current_span()
    if not span or not span.is_recording():
        return  # No active span - telemetry disabled or not in trace context

    span.add_event(
        name="violationhub.aggregation",
        attributes={
            "latency_ms": latency_ms,
            "cluster_count": cluster_count,
            "template_count": template_count,
            "group_count": group_count,
            "filtered": filtered,
        }
    )
