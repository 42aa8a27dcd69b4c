"""Persistence and HTTP transport helpers."""
