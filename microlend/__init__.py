"""Weekly micro-lending engine and backend."""

__version__ = "0.1.0"
