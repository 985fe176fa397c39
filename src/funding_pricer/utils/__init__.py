"""Shared utilities: logging, configuration, exceptions, time helpers."""
