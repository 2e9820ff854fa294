"""Route group exports."""

from . import health, live, service_areas, zones

__all__ = ["health", "live", "service_areas", "zones"]
