"""Studio: AI-assisted application builder backend."""

__version__ = "0.1.0"
