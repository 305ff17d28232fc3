"""LiveMap — realtime per-region access and gameplay aggregation service."""

__version__ = "0.1.0"
