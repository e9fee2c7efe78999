"""Commerce chat bridge service."""

__version__ = "1.0.0"
