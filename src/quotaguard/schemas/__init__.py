"""Pydantic schemas for limits and rejection responses."""
