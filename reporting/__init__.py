"""
Microgrid reporting service.

Streams raw, resampled and formula-aggregated telemetry of microgrid
components from a TimescaleDB sample store over HTTP.
"""

__version__ = "0.1.0"
