"""Test fixtures and seed helpers."""
