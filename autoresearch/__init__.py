"""Automated multi-source research and report generation."""

__version__ = "0.1.0"
