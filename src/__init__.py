# src/__init__.py — v1
"""songsmith — staged song lyric generation with graceful degradation."""
