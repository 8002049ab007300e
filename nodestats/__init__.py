"""Collectors that turn Linux kernel statistics into Prometheus-style metric samples."""

__version__ = "0.1.0"