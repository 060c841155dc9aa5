"""
YAML reply protocol between the model and the loop.

A model reply is expected to look like:

    thoughts:
      - <string>
    run: |
      <shell text>          # or literally: STOP

Decoding never raises on bad model output; it returns `Malformed` so the
loop can ask the model to fix its format. Observations are rendered back
as a YAML document of the same flavour.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from .runner import CommandOutcome

STOP_KEYWORD = "STOP"

_FENCE_OPENERS = ("```yaml", "```yml", "```")
_FENCE_CLOSER = "```"


# -----------------------------
# Instructions
# -----------------------------

@dataclass(frozen=True)
class RunCommand:
    thoughts: Tuple[str, ...]
    command: str


@dataclass(frozen=True)
class Stop:
    thoughts: Tuple[str, ...]


@dataclass(frozen=True)
class Malformed:
    raw: str
    reason: str


Instruction = Union[RunCommand, Stop, Malformed]


# -----------------------------
# Decoding
# -----------------------------

def strip_framing(raw_text: str) -> str:
    """Remove a wrapping Markdown code fence; unfenced text is returned untouched."""
    content = raw_text.strip()
    for opener in _FENCE_OPENERS:
        if content.startswith(opener):
            content = content[len(opener):]
            if content.endswith(_FENCE_CLOSER):
                content = content[:-len(_FENCE_CLOSER)]
            return content
    return raw_text


def _coerce_thoughts(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ValueError(f"'thoughts' must be a list of strings, got {type(value).__name__}")
    thoughts: List[str] = []
    for item in value:
        if isinstance(item, (dict, list)):
            raise ValueError("'thoughts' items must be plain strings")
        thoughts.append("" if item is None else str(item))
    return tuple(thoughts)


def _untyped_value(content: str, key: str) -> Any:
    """Re-read one top-level value with implicit typing turned off."""
    return yaml.load(content, Loader=yaml.BaseLoader)[key]


def decode(raw_text: str) -> Instruction:
    """
    Turn one model reply into an instruction.

    Fields other than `thoughts` and `run` are ignored. `run` is STOP only
    when the whole value equals the keyword after trimming; a script that
    merely contains the word is still a command.
    """
    content = strip_framing(raw_text or "")
    if not content.strip():
        return Malformed(raw=raw_text, reason="Reply is empty; expected a YAML document.")

    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        return Malformed(raw=raw_text, reason=f"Reply is not valid YAML: {e}")

    if not isinstance(document, dict):
        return Malformed(
            raw=raw_text,
            reason=(
                "Reply must be a YAML mapping with 'thoughts' and 'run' keys, "
                f"got {type(document).__name__}."
            ),
        )

    if "run" not in document:
        return Malformed(raw=raw_text, reason="Reply is missing the required 'run' key.")

    run = document["run"]
    if run is None:
        return Malformed(raw=raw_text, reason="'run' is empty.")
    if not isinstance(run, (str, list, dict)):
        # `run: true` or `run: 2024-01-01` is shell text, not a YAML bool or date
        try:
            run = _untyped_value(content, "run")
        except yaml.YAMLError as e:
            return Malformed(raw=raw_text, reason=f"Reply is not valid YAML: {e}")
    if not isinstance(run, str):
        return Malformed(
            raw=raw_text,
            reason=f"'run' must be a string, got {type(run).__name__}.",
        )
    if not run.strip():
        return Malformed(raw=raw_text, reason="'run' is empty.")

    try:
        thoughts = _coerce_thoughts(document.get("thoughts"))
    except ValueError as e:
        return Malformed(raw=raw_text, reason=str(e))

    if run.strip() == STOP_KEYWORD:
        return Stop(thoughts=thoughts)
    return RunCommand(thoughts=thoughts, command=run)


# -----------------------------
# Encoding
# -----------------------------

class _Quoted(str):
    pass


class _ObservationDumper(yaml.SafeDumper):
    pass


def _represent_quoted(dumper: yaml.SafeDumper, data: _Quoted):
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


_ObservationDumper.add_representer(_Quoted, _represent_quoted)


def _dump(fields: Dict[str, Any]) -> str:
    return yaml.dump(
        fields,
        Dumper=_ObservationDumper,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )


def render_observation(outcome: CommandOutcome) -> str:
    """
    stdout/stderr are always double-quoted (empty output shows as ""),
    exit_code is an integer or null when the process never produced one.
    """
    return _dump({
        "stdout": _Quoted(outcome.stdout or ""),
        "stderr": _Quoted(outcome.stderr or ""),
        "exit_code": outcome.exit_code,
    })


def render_correction(malformed: Malformed, attempt: Optional[int] = None, limit: Optional[int] = None) -> str:
    fields: Dict[str, Any] = {
        "error": _Quoted("Error parsing response"),
        "reason": _Quoted(malformed.reason),
        "expected": _Quoted(
            "Reply with exactly one YAML document with keys 'thoughts' (list of strings) "
            "and 'run' (a shell script, or STOP when the task is done)."
        ),
    }
    if attempt is not None and limit is not None:
        fields["attempts_left"] = max(0, limit - attempt)
    return _dump(fields)
