"""Marketplace listing monitor: scheduled price, stock and competitor tracking."""

__version__ = "0.1.0"
