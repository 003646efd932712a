"""Mori: streaming tool-calling chat agent."""

__version__ = "0.3.0"
