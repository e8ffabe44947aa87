"""Persistence core for DMARC aggregate reports."""

__version__ = "4.0.0"
