# src/llm/config.py — v3
"""Model routing for capabilities.

Each capability resolves to a ``provider:model`` hint, first match wins:
``LLM_<CAPABILITY>``, then ``LLM_GROUP_<GROUP>``, then the configured
default pair, then the built-in Gemini fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from songsmith.config.settings import Settings
from songsmith.config.stages import GROUP_CAPABILITY_MAP

if TYPE_CHECKING:
    from songsmith.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

_FALLBACK = ("google", "gemini-2.5-flash")

_GROUP_BY_CAPABILITY: dict[str, str] = {
    capability: group
    for group, capabilities in GROUP_CAPABILITY_MAP.items()
    for capability in capabilities
}


@dataclass(frozen=True)
class LLMAssignment:
    """Model hint chosen for one capability and where it came from."""

    provider: str
    model: str
    source: str  # capability | group | default | fallback

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.model}"


def group_of(capability: str) -> str | None:
    """Routing group of a capability, or None when it has none."""
    return _GROUP_BY_CAPABILITY.get(capability)


def _split_hint(value: str) -> tuple[str, str] | None:
    provider, sep, model = value.partition(":")
    provider, model = provider.strip(), model.strip()
    if not sep or not provider or not model:
        return None
    return provider, model


def _overrides(capability: str, settings: Settings) -> Iterator[tuple[str, str]]:
    yield "capability", getattr(settings, f"llm_{capability}", "")
    group = group_of(capability)
    if group is not None:
        yield "group", getattr(settings, f"llm_group_{group}", "")
    yield "default", f"{settings.llm_default_provider}:{settings.llm_default_model}"


def resolve_llm(capability: str, settings: Settings) -> LLMAssignment:
    """Walk the override cascade for ``capability``.

    Blank or malformed hints are skipped; a hint without a provider or a
    model never wins.
    """
    for source, value in _overrides(capability, settings):
        if not value:
            continue
        hint = _split_hint(value)
        if hint is None:
            if source != "default":
                logger.warning("Ignoring malformed model hint for %s: %r", capability, value)
            continue
        return LLMAssignment(provider=hint[0], model=hint[1], source=source)
    return LLMAssignment(provider=_FALLBACK[0], model=_FALLBACK[1], source="fallback")


class LLMFactory:
    """Hand each capability the client for its resolved model hint.

    Clients are cached per provider:model so stages sharing a model share
    one client.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._clients: dict[str, BaseLLMClient] = {}

    def __call__(self, capability: str) -> BaseLLMClient:
        from songsmith.llm.client_factory import create_llm_client

        assignment = resolve_llm(capability, self._settings)
        client = self._clients.get(assignment.key)
        if client is None:
            logger.debug(
                "LLM for '%s': %s (via %s)", capability, assignment.key, assignment.source,
            )
            client = create_llm_client(
                assignment.provider, assignment.model, settings=self._settings,
            )
            self._clients[assignment.key] = client
        return client
