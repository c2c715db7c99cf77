"""Story creation and the interactive continuation protocol.

  orchestrator — GenerationContext → persisted story + first segment
  reader       — ReaderSession: choices, endings, refetch-driven advancement
  polling      — StalledGenerationMonitor for stories still waiting on text
  session      — open_reader: a ReaderSession wired from config, with polling
  writer       — StoryWriter, the LLM-backed generation collaborator
"""

from .orchestrator import CreationOutcome, create_story  # noqa: F401
from .polling import StalledGenerationMonitor  # noqa: F401
from .reader import ReaderSession, ReaderState, illustrate  # noqa: F401
from .session import open_reader  # noqa: F401
from .writer import HttpMediaGenerator, MediaGenerator, StoryWriter  # noqa: F401
