# src/core/__init__.py — v1
"""Domain models, error taxonomy, auto settings, lyrics parsing, input validation."""
