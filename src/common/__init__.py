"""Shared helpers: logging and upstream HTTP."""
