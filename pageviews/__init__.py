"""Hourly top-25 Wikipedia pages per domain, computed from pageview dumps."""

__version__ = "0.1.0"
