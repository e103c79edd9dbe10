"""Airlane shared helpers."""
