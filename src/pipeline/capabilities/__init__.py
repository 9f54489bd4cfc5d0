# src/pipeline/capabilities/__init__.py — v1
"""Stage capabilities behind the uniform call contract."""
