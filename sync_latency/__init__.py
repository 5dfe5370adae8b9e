"""Measure how long cloud file-sync services take to show changes."""

__version__ = "0.1.0"
