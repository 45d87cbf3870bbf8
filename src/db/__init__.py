"""Persistence: SQLAlchemy models, sessions and the mastery repository."""
