"""Power Datacenter Prometheus Exporter package.

Logs in to a Power Datacenter inverter monitoring portal, polls the work info
of one inverter on a fixed interval and exposes it as Prometheus gauges.
"""

__version__ = "0.1.0"
