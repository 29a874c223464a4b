import pytest

from violationhub.telemetry import emit_aggregation_telemetry, init_telemetry


def test_emit_aggregation_telemetry_does_not_crash():
    """
    Telemetry safely no-ops when no active span exists (local / tests).
    """
    emit_aggregation_telemetry(
        latency_ms=12,
        cluster_count=4,
        template_count=1,
        group_count=3,
        filtered=False,
    )

    # empty result of a filtered request
    emit_aggregation_telemetry(
        latency_ms=3,
        cluster_count=4,
        template_count=0,
        group_count=0,
        filtered=True,
    )


def test_emit_aggregation_telemetry_records_span_event(mocker):
    span = mocker.Mock()
    span.is_recording.return_value = True
    mocker.patch("violationhub.telemetry.get_current_span", return_value=span)

    emit_aggregation_telemetry(latency_ms=5, cluster_count=2, template_count=1, group_count=1, filtered=True)

    span.add_event.assert_called_once()
    attributes = span.add_event.call_args.kwargs["attributes"]
    assert attributes["cluster_count"] == 2
    assert attributes["filtered"] is True


def test_emit_aggregation_telemetry_rejects_bad_types():
    with pytest.raises(AssertionError):
        emit_aggregation_telemetry(latency_ms=1.5, cluster_count=0, template_count=0, group_count=0, filtered=False)


def test_init_telemetry_disabled_without_connection_string(monkeypatch, mocker):
    monkeypatch.delenv("VIOLATIONHUB_APPINSIGHTS_CONNECTION_STRING", raising=False)
    configure = mocker.patch("violationhub.telemetry.configure_azure_monitor")

    assert init_telemetry() is False
    configure.assert_not_called()


def test_init_telemetry_enabled(monkeypatch, mocker):
    monkeypatch.setenv("VIOLATIONHUB_APPINSIGHTS_CONNECTION_STRING", "InstrumentationKey=00000000")
    configure = mocker.patch("violationhub.telemetry.configure_azure_monitor")

    assert init_telemetry() is True
    configure.assert_called_once_with(connection_string="InstrumentationKey=00000000")
