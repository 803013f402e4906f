import logging
import threading

from prometheus_client import CollectorRegistry

from pdc_exporter.errors import PDCHTTPError
from pdc_exporter.exporter import FLAG_METRICS, STATE_METRICS, VALUE_METRICS, PDCExporter
from pdc_exporter.workinfo import WorkInfo

from tests.fakes import FakeSession


def _exporter(results, serial="SN1"):
    registry = CollectorRegistry()
    exporter = PDCExporter(FakeSession(serial, results), registry=registry)
    return exporter, registry


def _value(registry, name, **labels):
    return registry.get_sample_value(name, labels)


def _state_series(registry, name):
    for metric in registry.collect():
        if metric.name == name:
            return {
                tuple(sorted(sample.labels.items())): sample.value
                for sample in metric.samples
            }
    raise AssertionError(f"Metric {name} not found")


def test_all_gauges_registered_up_front():
    exporter, registry = _exporter([])
    names = {metric.name for metric in registry.collect()}

    for spec in VALUE_METRICS + STATE_METRICS + FLAG_METRICS:
        assert f"pdc_{spec.name}" in names
    assert "pdc_scrape_error" in names
    assert "pdc_scrape_duration_seconds" in names
    assert "pdc_last_scrape_timestamp_seconds" in names


def test_numeric_fields_copied_unchanged():
    info = WorkInfo(
        grid_frequency_1=50.02,
        grid_voltage_2=229.9,
        battery_capacity=87.0,
        total_ac_output_active_power=1234.5,
    )
    exporter, registry = _exporter([info])

    assert exporter.poll() is True

    assert _value(registry, "pdc_grid1_frequency", serialno="SN1") == 50.02
    assert _value(registry, "pdc_grid2_voltage", serialno="SN1") == 229.9
    assert _value(registry, "pdc_battery_capacity_percent", serialno="SN1") == 87.0
    assert _value(registry, "pdc_total_acoutput_active_power", serialno="SN1") == 1234.5
    # Untouched fields are published as their zero value
    assert _value(registry, "pdc_pvinput2_current", serialno="SN1") == 0.0
    for spec in VALUE_METRICS:
        assert _value(registry, f"pdc_{spec.name}", serialno="SN1") == getattr(info, spec.attr)


def test_flags_map_to_one_and_zero():
    info = WorkInfo(has_load_1=True, ac_charge_on_2=True, overload=False, line_loss_1=True)
    exporter, registry = _exporter([info])
    exporter.poll()

    for spec in FLAG_METRICS:
        expected = 1.0 if getattr(info, spec.attr) else 0.0
        assert _value(registry, f"pdc_{spec.name}", serialno="SN1") == expected


def test_categorical_families_keep_only_current_value():
    exporter, registry = _exporter([
        WorkInfo(charge_source="Solar", load_source="Utility", work_mode="Line Mode"),
        WorkInfo(charge_source="Utility", load_source="Utility", work_mode="Battery Mode"),
    ])

    exporter.poll()
    exporter.poll()

    assert _state_series(registry, "pdc_charge_source") == {
        (("serialno", "SN1"), ("source", "Utility")): 1.0,
    }
    assert _state_series(registry, "pdc_load_source") == {
        (("serialno", "SN1"), ("source", "Utility")): 1.0,
    }
    assert _state_series(registry, "pdc_work_mode") == {
        (("mode", "Battery Mode"), ("serialno", "SN1")): 1.0,
    }


def test_failed_poll_keeps_last_values(caplog):
    exporter, registry = _exporter([
        WorkInfo(battery_voltage=53.1, charge_source="Solar", has_load_1=True),
        PDCHTTPError(500, "Internal Server Error", "boom"),
    ])

    assert exporter.poll() is True
    assert _value(registry, "pdc_scrape_error") == 0.0

    with caplog.at_level(logging.WARNING, logger="pdc_exporter.exporter"):
        assert exporter.poll() is False

    assert _value(registry, "pdc_scrape_error") == 1.0
    assert _value(registry, "pdc_battery_voltage", serialno="SN1") == 53.1
    assert _value(registry, "pdc_charge_source", serialno="SN1", source="Solar") == 1.0
    assert _value(registry, "pdc_hasload1", serialno="SN1") == 1.0
    assert any("HTTP 500" in record.getMessage() for record in caplog.records)


def test_success_after_failure_clears_scrape_error():
    exporter, registry = _exporter([
        PDCHTTPError(500, "Internal Server Error", "boom"),
        WorkInfo(battery_voltage=52.0),
    ])

    exporter.poll()
    assert _value(registry, "pdc_scrape_error") == 1.0
    # Nothing was published before the first success
    assert _value(registry, "pdc_battery_voltage", serialno="SN1") is None

    exporter.poll()
    assert _value(registry, "pdc_scrape_error") == 0.0
    assert _value(registry, "pdc_battery_voltage", serialno="SN1") == 52.0


def test_unexpected_exception_is_logged_and_flagged(caplog):
    exporter, registry = _exporter([RuntimeError("bad")])

    with caplog.at_level(logging.ERROR, logger="pdc_exporter.exporter"):
        assert exporter.poll() is False

    assert _value(registry, "pdc_scrape_error") == 1.0
    assert caplog.records


def test_scrape_timing_metrics_are_set():
    exporter, registry = _exporter([WorkInfo()])
    exporter.poll()

    assert _value(registry, "pdc_last_scrape_timestamp_seconds") > 0
    assert _value(registry, "pdc_scrape_duration_seconds") >= 0


def test_render_returns_text_exposition():
    exporter, _ = _exporter([WorkInfo(grid_frequency_1=50.02, has_load_1=True)])
    exporter.poll()

    output, content_type = exporter.render()
    text = output.decode("utf-8")

    assert content_type.startswith("text/plain")
    assert 'pdc_grid1_frequency{serialno="SN1"} 50.02' in text
    assert 'pdc_hasload1{serialno="SN1"} 1.0' in text
    assert "# HELP pdc_scrape_error Returns 1 if the last scrape failed" in text


def test_default_registry_includes_process_collectors():
    exporter = PDCExporter(FakeSession("SN1", []))
    names = {metric.name for metric in exporter.registry.collect()}

    assert any(name.startswith("python_") for name in names)
    assert "pdc_scrape_error" in names


def test_render_never_observes_half_applied_snapshot():
    snapshots = [
        WorkInfo(charge_source=source, work_mode=mode)
        for source, mode in [("Solar", "Line Mode"), ("Utility", "Battery Mode")] * 500
    ]
    exporter, _ = _exporter(snapshots)
    exporter.poll()
    finished = threading.Event()

    def poll_until_drained():
        try:
            while exporter.session.results:
                exporter.poll()
        finally:
            finished.set()

    poller = threading.Thread(target=poll_until_drained)
    poller.start()
    try:
        renders = 0
        while not finished.is_set() or renders == 0:
            lines = exporter.render()[0].decode("utf-8").splitlines()
            for family in ("pdc_charge_source{", "pdc_work_mode{"):
                assert sum(line.startswith(family) for line in lines) == 1
            renders += 1
    finally:
        poller.join()

    assert not exporter.session.results
