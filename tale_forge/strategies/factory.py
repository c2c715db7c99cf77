"""Creation mode → strategy lookup.

The factory is an ordinary object handed to whoever needs it; there is no
module-level registry. default_factory() wires up the three built-in modes.
"""

from __future__ import annotations

import random
from collections.abc import Mapping

from tale_forge.models import CreationMode

from .advanced import AdvancedModeStrategy
from .base import GenerationStrategy
from .easy import EasyModeStrategy
from .template import TemplateModeStrategy


class UnknownModeError(LookupError):
    """Raised when no strategy is registered for a creation mode."""


class StrategyFactory:
    def __init__(self, strategies: Mapping[CreationMode, GenerationStrategy] | None = None) -> None:
        self._strategies: dict[CreationMode, GenerationStrategy] = dict(strategies or {})

    def get_strategy(self, mode: CreationMode | str) -> GenerationStrategy:
        try:
            key = CreationMode(mode)
        except ValueError:
            raise UnknownModeError(f"No strategy registered for mode {mode!r}") from None
        strategy = self._strategies.get(key)
        if strategy is None:
            raise UnknownModeError(f"No strategy registered for mode {key.value!r}")
        return strategy

    def get_supported_modes(self) -> list[CreationMode]:
        return list(self._strategies)

    def register_strategy(self, mode: CreationMode, strategy: GenerationStrategy) -> None:
        """Add or replace the strategy for a mode. Last registration wins."""
        self._strategies[CreationMode(mode)] = strategy


def default_factory(rng: random.Random | None = None) -> StrategyFactory:
    return StrategyFactory({
        CreationMode.EASY: EasyModeStrategy(rng),
        CreationMode.TEMPLATE: TemplateModeStrategy(rng),
        CreationMode.ADVANCED: AdvancedModeStrategy(rng),
    })
