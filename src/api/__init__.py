# src/api/__init__.py — v1
"""Public API: SongStudio facade and request/result models."""
