"""
Core Values Kernel: the card-sorting engine.

Components:
  commands    - Drop / Move, the only two things a user can do to a card
  reducer     - (state, command) -> state  (pure, deterministic)
  validator   - round completion and end-game rules
  scheduling  - which categories a round offers
  engine      - coordinates the above with storage (Postgres or memory)
"""

from corevalues.kernel.commands import DropCommand, MoveCommand, make_drop, make_move
from corevalues.kernel.reducer import apply_command, reconstruct, replay, resume
from corevalues.kernel.scheduling import schedule_categories
from corevalues.kernel.session_engine import EngineResult, SessionEngine, SessionPhase
from corevalues.kernel.storage import MemoryStorage, SessionStorage
from corevalues.kernel.validator import evaluate_round

__all__ = [
    "DropCommand",
    "MoveCommand",
    "make_drop",
    "make_move",
    "apply_command",
    "replay",
    "reconstruct",
    "resume",
    "evaluate_round",
    "schedule_categories",
    "SessionEngine",
    "SessionPhase",
    "EngineResult",
    "SessionStorage",
    "MemoryStorage",
]
