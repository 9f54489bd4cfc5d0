# src/llm/__init__.py — v1
"""LLM clients, routing, rate limiting and retry."""
