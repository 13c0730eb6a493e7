"""Spreadsheet-backed workload tracking: item sync and ticket import."""

__version__ = "1.0.0"
