# src/llm/client_factory.py — v3
"""Provider table for the generation backend.

``LLMFactory`` (llm/config.py) resolves a capability to ``provider:model``
and asks this module for a matching client. Gemini is the only built-in
provider; further adapters can be registered at startup.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass

from songsmith.config.settings import Settings
from songsmith.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEntry:
    """Adapter class path plus the Settings field holding its credential."""

    class_path: str
    api_key_field: str | None = None


_PROVIDERS: dict[str, ProviderEntry] = {
    "google": ProviderEntry(
        "songsmith.llm.adapters.google_adapter.GoogleAdapter",
        api_key_field="google_api_key",
    ),
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Build the adapter registered for ``provider``.

    The credential named by the provider entry is read from ``settings``
    unless ``api_key`` is passed explicitly.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    entry = _PROVIDERS.get(provider)
    if entry is None:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(available_providers())}"
        )

    init_kwargs: dict[str, object] = {"model": model, **kwargs}
    if settings is not None and entry.api_key_field:
        init_kwargs.setdefault("api_key", getattr(settings, entry.api_key_field))

    adapter_cls = _load_adapter(entry.class_path)
    logger.debug("Creating %s client for model %s", provider, model)
    return adapter_cls(**init_kwargs)


def register_provider(name: str, class_path: str, api_key_field: str | None = None) -> None:
    """Add or replace a provider adapter.

    Args:
        name: Provider identifier used in ``provider:model`` assignments.
        class_path: Fully qualified BaseLLMClient subclass.
        api_key_field: Settings attribute passed as ``api_key``, if any.
    """
    _PROVIDERS[name] = ProviderEntry(class_path, api_key_field)
    logger.info("Registered LLM provider %s (%s)", name, class_path)


def _load_adapter(class_path: str) -> type[BaseLLMClient]:
    module_path, class_name = class_path.rsplit(".", 1)
    adapter_cls = getattr(importlib.import_module(module_path), class_name)
    if not issubclass(adapter_cls, BaseLLMClient):
        raise UnsupportedProviderError(f"{class_path} is not a BaseLLMClient")
    return adapter_cls
