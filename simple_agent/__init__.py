"""
Run a language model against a shell until it says STOP.

Requires:
  pip install openai pyyaml
"""
from .errors import AgentError, BackendError, ConfigError
from .loop import AgentLoop, LoopState, RunOutcome, RunResult
from .models import ModelClient, OpenAIChatClient
from .protocol import Instruction, Malformed, RunCommand, Stop, decode, render_observation
from .runner import CommandOutcome, CommandRunner
from .transcript import Role, Transcript, Turn

__version__ = "0.1.0"

__all__ = [
    "AgentError",
    "AgentLoop",
    "BackendError",
    "CommandOutcome",
    "CommandRunner",
    "ConfigError",
    "Instruction",
    "LoopState",
    "Malformed",
    "ModelClient",
    "OpenAIChatClient",
    "Role",
    "RunCommand",
    "RunOutcome",
    "RunResult",
    "Stop",
    "Transcript",
    "Turn",
    "decode",
    "render_observation",
]
