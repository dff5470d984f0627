"""Database models and base."""
