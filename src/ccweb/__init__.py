"""ccweb: web backend for a coding-agent dashboard."""

__version__ = "0.1.0"
