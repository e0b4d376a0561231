"""Smart Display Service: backend for a personal dashboard display."""

__version__ = "1.0.0"
