"""Story generation strategies, one per creation mode.

Each strategy runs the same six-phase pipeline (see base.py) over a
differently shaped input:

  easy      — {difficulty, genre, characterName, characterTraits?, storySeed?}
  template  — {templateId, template: {name, settings}, childName, customizations?}
  advanced  — the full wizard: child, difficulty, words per chapter, characters,
              setting, plot elements, extra requests

StrategyFactory maps a CreationMode to its strategy instance.
"""

from .advanced import AdvancedModeStrategy  # noqa: F401
from .base import GenerationStrategy  # noqa: F401
from .easy import EasyModeStrategy  # noqa: F401
from .factory import StrategyFactory, UnknownModeError, default_factory  # noqa: F401
from .template import TemplateModeStrategy  # noqa: F401
