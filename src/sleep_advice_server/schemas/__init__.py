"""Pydantic schemas for request bodies, statistics and stream events."""
