"""Pydantic schemas returned by the exposed operations."""
