"""Shared helpers: monthly period handling."""
