"""Aggregated multi-instrument footprint engine."""

__version__ = "0.3.0"
