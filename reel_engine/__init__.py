"""Browser-driven media generation pipeline."""

__version__ = "0.1.0"
