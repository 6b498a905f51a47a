"""Database primitives: declarative base, engine and session management."""
