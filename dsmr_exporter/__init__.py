"""
DSMR Logger Exporter

Bridges a DSMR smart-meter data logger to Prometheus: every scrape of
/metrics polls the logger once and renders its readings as gauges.
"""

__version__ = "1.0.0"
