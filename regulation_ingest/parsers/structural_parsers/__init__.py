"""Structural parsers (document tree builders)."""
