"""Courier command-line interface."""
