from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .errors import ConfigError


class Role(str, Enum):
    SYSTEM = "system"
    TASK = "task"
    ASSISTANT = "assistant"
    OBSERVATION = "observation"


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str


class Transcript:
    """
    Ordered conversation history for one run.

    The first two turns are always system and task. Role ordering after that
    (assistant, observation, assistant, ...) is kept by the agent loop, not here.
    """

    def __init__(self, turns: List[Turn]):
        self._turns = list(turns)

    @classmethod
    def seed(cls, system_text: str, task_text: str) -> "Transcript":
        if not system_text or not system_text.strip():
            raise ConfigError("System prompt is empty.")
        if not task_text or not task_text.strip():
            raise ConfigError("Task text is empty.")
        return cls([Turn(Role.SYSTEM, system_text), Turn(Role.TASK, task_text)])

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def render_for_model(self) -> List[Tuple[str, str]]:
        return [(turn.role.value, turn.content) for turn in self._turns]

    @property
    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def roles(self) -> List[Role]:
        return [turn.role for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
