"""Airlane persistence — SQLAlchemy base, session management, storage models."""
