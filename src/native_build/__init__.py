"""Build task orchestrator for native library chains."""

__version__ = "0.1.0"
