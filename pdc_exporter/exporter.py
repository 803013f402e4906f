"""Prometheus metrics exporter module.

This module handles:
- Defining one Prometheus gauge per work info field
- Polling the Power Datacenter session and updating the gauges
- Rendering the registry for the HTTP server
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Gauge,
    generate_latest,
    make_wsgi_app,
)
from prometheus_client.gc_collector import GCCollector
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

from pdc_exporter.errors import PDCError
from pdc_exporter.session import PDCSession
from pdc_exporter.workinfo import WorkInfo

# Configure module logger
logger = logging.getLogger(__name__)

NAMESPACE = "pdc"

LABEL_SERIAL_NUMBER = "serialno"
LABEL_SOURCE = "source"
LABEL_WORK_MODE = "mode"


@dataclass(frozen=True)
class MetricSpec:
    """Maps a WorkInfo attribute onto a gauge.

    Attributes:
        attr: WorkInfo attribute name
        name: Metric name without the namespace prefix
        help: Help text
        label: Extra label carrying the value, for categorical fields only
    """
    attr: str
    name: str
    help: str
    label: Optional[str] = None


VALUE_METRICS: Tuple[MetricSpec, ...] = (
    # Grid
    MetricSpec("grid_frequency_1", "grid1_frequency", "Grid 1 frequency in herz"),
    MetricSpec("grid_frequency_2", "grid2_frequency", "Grid 2 frequency in herz"),
    MetricSpec("grid_voltage_1", "grid1_voltage", "Grid 1 voltage"),
    MetricSpec("grid_voltage_2", "grid2_voltage", "Grid 2 voltage"),
    # PV input
    MetricSpec("pv_input_voltage_1", "pvinput1_voltage", "PV input 1 voltage"),
    MetricSpec("pv_input_voltage_2", "pvinput2_voltage", "PV input 2 voltage"),
    MetricSpec("pv_input_current_1", "pvinput1_current", "PV input 1 current in amps"),
    MetricSpec("pv_input_current_2", "pvinput2_current", "PV input 2 current in amps"),
    # AC output
    MetricSpec("ac_output_voltage_1", "acoutput1_voltage", "AC output 1 voltage"),
    MetricSpec("ac_output_voltage_2", "acoutput2_voltage", "AC output 2 voltage"),
    MetricSpec("ac_output_frequency_1", "acoutput1_frequency", "AC output 1 frequency in herz"),
    MetricSpec("ac_output_frequency_2", "acoutput2_frequency", "AC output 2 frequency in herz"),
    MetricSpec("ac_output_apparent_power_1", "acoutput1_apparent_power",
               "AC output 1 apparent power in volt-amps"),
    MetricSpec("ac_output_apparent_power_2", "acoutput2_apparent_power",
               "AC output 2 apparent power in volt-amps"),
    MetricSpec("ac_output_active_power_1", "acoutput1_active_power",
               "AC output 1 active power in watts"),
    MetricSpec("ac_output_active_power_2", "acoutput2_active_power",
               "AC output 2 active power in watts"),
    # Output load
    MetricSpec("output_load_percent_1", "output1_load_percent", "Output 1 load in percentage"),
    MetricSpec("output_load_percent_2", "output2_load_percent", "Output 2 load in percentage"),
    # Battery
    MetricSpec("battery_voltage", "battery_voltage", "Battery voltage"),
    MetricSpec("battery_capacity", "battery_capacity_percent", "Battery capacity in percentage"),
    MetricSpec("battery_charge_current", "battery_charge_current",
               "Battery charge current in amps"),
    MetricSpec("battery_discharge_current", "battery_discharge_current",
               "Battery discharge current in amps"),
    # Totals
    MetricSpec("total_pv_input_power", "total_pvinput_power", "Total PV input power in watts"),
    MetricSpec("total_output_load_percent", "total_output_load_percent",
               "Total output load in percentage"),
    MetricSpec("total_battery_charge_current", "total_battery_charge_current",
               "Total battery charge current in amps"),
    MetricSpec("total_ac_output_apparent_power", "total_acoutput_apparent_power",
               "Total AC output apparent power in volt-amps"),
    MetricSpec("total_ac_output_active_power", "total_acoutput_active_power",
               "Total AC output active power in watts"),
)

STATE_METRICS: Tuple[MetricSpec, ...] = (
    MetricSpec("charge_source", "charge_source", "Charge source", LABEL_SOURCE),
    MetricSpec("load_source", "load_source", "Load source", LABEL_SOURCE),
    MetricSpec("work_mode", "work_mode", "Work mode", LABEL_WORK_MODE),
)

FLAG_METRICS: Tuple[MetricSpec, ...] = (
    MetricSpec("has_load_1", "hasload1", "Returns 1 if output 1 has load"),
    MetricSpec("has_load_2", "hasload2", "Returns 1 if output 2 has load"),
    MetricSpec("ac_charge_on_1", "acchargeon1",
               "Returns 1 if line 1 is being charged with utility power"),
    MetricSpec("ac_charge_on_2", "acchargeon2",
               "Returns 1 if line 2 is being charged with utility power"),
    MetricSpec("scc_charge_on_1", "sccchargeon1",
               "Returns 1 if line 1 is being charged with solar power"),
    MetricSpec("scc_charge_on_2", "sccchargeon2",
               "Returns 1 if line 2 is being charged with solar power"),
    MetricSpec("line_loss_1", "lineloss1", "Returns 1 if utility line 1 is offline"),
    MetricSpec("line_loss_2", "lineloss2", "Returns 1 if utility line 2 is offline"),
    MetricSpec("overload", "overload", "Returns 1 if system is overloaded"),
)


def create_registry() -> CollectorRegistry:
    """Create a private registry carrying the process and runtime collectors."""
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)
    return registry


def bool_to_float(value: bool) -> float:
    return 1.0 if value else 0.0


class PDCExporter:
    """Prometheus exporter for Power Datacenter inverter telemetry.

    Exposes one gauge per numeric work info field, one gauge family per
    categorical field (charge source, load source, work mode) and one gauge
    per status flag, all labelled with the inverter serial number. Also
    exposes operational metrics:
    - pdc_scrape_error: 1 if the last scrape failed, 0 otherwise
    - pdc_last_scrape_timestamp_seconds: Unix timestamp of the last attempt
    - pdc_scrape_duration_seconds: Duration of the last attempt

    A failed scrape leaves every value gauge at its last known value.

    Attributes:
        session: Authenticated Power Datacenter session
        namespace: Metric name prefix
    """

    def __init__(
        self,
        session: PDCSession,
        registry: Optional[CollectorRegistry] = None,
        namespace: str = NAMESPACE
    ):
        """Initialize the exporter and register every metric.

        Args:
            session: Session used to fetch work info
            registry: Optional custom registry for testing. If None, a
                private registry with process collectors is created.
            namespace: Metric name prefix
        """
        self.session = session
        self.namespace = namespace
        self._registry = registry if registry is not None else create_registry()

        # Guards snapshot application against concurrent rendering
        self._lock = threading.Lock()

        self._values: Dict[str, Gauge] = {}
        self._states: Dict[str, Gauge] = {}
        self._flags: Dict[str, Gauge] = {}

        for spec in VALUE_METRICS:
            self._values[spec.attr] = self._gauge(spec.name, spec.help, [LABEL_SERIAL_NUMBER])

        for spec in STATE_METRICS:
            self._states[spec.attr] = self._gauge(
                spec.name, spec.help, [LABEL_SERIAL_NUMBER, spec.label]
            )

        for spec in FLAG_METRICS:
            self._flags[spec.attr] = self._gauge(spec.name, spec.help, [LABEL_SERIAL_NUMBER])

        # Operational metrics (no labels)
        self._scrape_error = self._gauge(
            "scrape_error",
            "Returns 1 if the last scrape failed"
        )

        self._scrape_timestamp = self._gauge(
            "last_scrape_timestamp_seconds",
            "Unix timestamp of the last scrape attempt"
        )

        self._scrape_duration = self._gauge(
            "scrape_duration_seconds",
            "Duration of the last scrape attempt in seconds"
        )

        self._wsgi_app = make_wsgi_app(self._registry)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def _gauge(self, name: str, documentation: str, labelnames=()) -> Gauge:
        return Gauge(
            name,
            documentation,
            labelnames,
            namespace=self.namespace,
            registry=self._registry
        )

    def update_metrics(self, info: WorkInfo) -> None:
        """Apply a work info snapshot to every gauge.

        Numeric gauges are overwritten. Each categorical family is cleared
        before the current value is set, so exactly one series per family
        remains. Status flags become 1.0 or 0.0.

        Args:
            info: Snapshot to publish
        """
        serial = self.session.serial_number

        with self._lock:
            for attr, gauge in self._values.items():
                gauge.labels(serial).set(getattr(info, attr))

            for attr, gauge in self._states.items():
                gauge.clear()
                gauge.labels(serial, getattr(info, attr)).set(1)

            for attr, gauge in self._flags.items():
                gauge.labels(serial).set(bool_to_float(getattr(info, attr)))

    def set_scrape_error(self, failed: bool, duration: float) -> None:
        """Update operational metrics after a scrape attempt.

        Args:
            failed: Whether the scrape failed
            duration: How long the scrape took in seconds
        """
        self._scrape_error.set(1 if failed else 0)
        self._scrape_timestamp.set(time.time())
        self._scrape_duration.set(duration)

    def poll(self) -> bool:
        """Fetch one snapshot and publish it.

        On failure the error is logged, pdc_scrape_error is set to 1 and all
        other gauges keep their previous values.

        Returns:
            True if the snapshot was fetched and published
        """
        start_time = time.time()
        self._scrape_error.set(0)

        try:
            info = self.session.fetch_snapshot()
        except PDCError as e:
            logger.warning(f"Scrape failed: {e}")
            self.set_scrape_error(True, time.time() - start_time)
            return False
        except Exception:
            logger.exception("Scrape failed (unexpected error)")
            self.set_scrape_error(True, time.time() - start_time)
            return False

        logger.info(f"Retrieved metrics from {self.session.serial_number}")

        self.update_metrics(info)
        self.set_scrape_error(False, time.time() - start_time)
        return True

    def render(self) -> Tuple[bytes, str]:
        """Render the registry in the Prometheus text format.

        Returns:
            Tuple of (body, content type)
        """
        with self._lock:
            output = generate_latest(self._registry)
        return output, CONTENT_TYPE_LATEST

    def serve_metrics(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        """WSGI handler for scrapes.

        Delegates to prometheus_client's WSGI app, which negotiates the
        exposition format (text or OpenMetrics) and gzip compression.
        """
        with self._lock:
            return self._wsgi_app(environ, start_response)
