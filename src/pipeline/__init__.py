# src/pipeline/__init__.py — v1
"""Workflow orchestration: state, progress, streaming, registry."""
