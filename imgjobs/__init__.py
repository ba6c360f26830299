"""Queue-driven image compression worker."""

__version__ = "1.0.0"
