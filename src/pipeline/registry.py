# src/pipeline/registry.py — v2
"""Capability registry — dynamic loading and lookup of stage capabilities.

Loads capability classes from CAPABILITY_REGISTRY config and checks that
every stage of the plan has a capability behind it.
"""

from __future__ import annotations

import importlib
import logging
from typing import Iterable

from songsmith.config.stages import CAPABILITY_REGISTRY, StageSpec
from songsmith.pipeline.capabilities.base_capability import BaseCapability

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when capability loading or validation fails."""


class CapabilityRegistry:
    """Registry of the capabilities the orchestrator can call."""

    def __init__(self) -> None:
        self._capabilities: dict[str, BaseCapability] = {}

    @classmethod
    def default(cls) -> CapabilityRegistry:
        """Registry loaded with every configured capability."""
        registry = cls()
        registry.load_all()
        return registry

    @property
    def names(self) -> list[str]:
        return sorted(self._capabilities)

    def load_all(self, class_paths: Iterable[str] = CAPABILITY_REGISTRY) -> None:
        """Import and instantiate every configured capability.

        Raises:
            RegistryError: If a class path cannot be loaded.
        """
        for class_path in class_paths:
            capability = _import_capability(class_path)
            self._capabilities[capability.name] = capability
            logger.debug("Loaded capability: %s", capability.name)
        logger.info("Registry loaded %d capabilities", len(self._capabilities))

    def register(self, capability: BaseCapability) -> None:
        """Manually register a capability instance."""
        if capability.name in self._capabilities:
            logger.warning("Overwriting existing capability: %s", capability.name)
        self._capabilities[capability.name] = capability

    def get(self, name: str) -> BaseCapability | None:
        return self._capabilities.get(name)

    def get_or_raise(self, name: str) -> BaseCapability:
        capability = self._capabilities.get(name)
        if capability is None:
            raise RegistryError(f"Capability '{name}' not found in registry")
        return capability

    def validate_plan(self, plan: Iterable[StageSpec]) -> list[str]:
        """Return an error message for every stage without a capability."""
        errors: list[str] = []
        for stage in plan:
            capability = self._capabilities.get(stage.id)
            if capability is None:
                errors.append(f"Stage '{stage.id}' has no registered capability")
            elif stage.streaming and type(capability).open_stream is BaseCapability.open_stream:
                errors.append(f"Stage '{stage.id}' streams but '{capability.name}' does not")
        return errors


def _import_capability(class_path: str) -> BaseCapability:
    """Import and instantiate a capability from a dotted class path."""
    parts = class_path.rsplit(".", 1)
    if len(parts) != 2:
        raise RegistryError(f"Invalid class path: {class_path}")
    module_path, class_name = parts

    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise RegistryError(f"Cannot import module {module_path}: {exc}") from exc

    cls = getattr(module, class_name, None)
    if cls is None:
        raise RegistryError(f"Class {class_name} not found in {module_path}")

    if not isinstance(cls, type) or not issubclass(cls, BaseCapability):
        raise RegistryError(f"{class_path} is not a BaseCapability subclass")

    return cls()
