"""Logging and metrics for errwatch."""
