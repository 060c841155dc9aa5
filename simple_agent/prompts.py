import re
from pathlib import Path
from typing import Dict, Optional

from .errors import ConfigError


def build_system_instructions(shell_name: str = "bash") -> str:
    return f"""
You are an autonomous agent that completes a task by running shell commands, one step at a time.

Hard rules:
- Every reply MUST be a single YAML document with exactly two keys: "thoughts" and "run". No prose outside it.
- "thoughts" is a list of short strings: what you observed, what you conclude, what you will do next.
- "run" is a {shell_name} script that will be executed verbatim. Use a block scalar (run: |) for multi-line scripts.
- When the task is fully done, set run to the single word STOP and nothing else.
- Commands run non-interactively: never wait for input, pass -y / --yes flags where needed.
- Prefer idempotent commands so that a step can be repeated safely.
- You have sudo available without a password if something needs elevated rights.

Interaction:
- After each step you receive a YAML document with the "stdout", "stderr" and "exit_code" of your script.
- exit_code is null when the script could not be started or was stopped by a timeout.
- If your reply could not be parsed you receive an "error" document instead; fix the format and continue.

Example reply:
thoughts:
  - "I need to see what is in the working directory"
run: |
  ls -la
""".strip()


DEFAULT_TASK_TEMPLATE = """
# Task

{{ task }}

Reply with your first step.
""".strip()

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render_template(template: str, values: Dict[str, str]) -> str:
    """Substitute `{{ name }}` placeholders verbatim; no escaping is applied."""
    missing = sorted({m.group(1) for m in _PLACEHOLDER.finditer(template)} - set(values))
    if missing:
        raise ConfigError(f"Task template uses unknown placeholder(s): {', '.join(missing)}")
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


def read_text_file(path: str, what: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to read {what} from {path}: {e}") from e


def load_prompts(
        *,
        task_path: str,
        system_path: Optional[str] = None,
        template_path: Optional[str] = None,
        shell_name: str = "bash",
) -> Dict[str, str]:
    """Read the prompt files once at startup; returns rendered system and task text."""
    task = read_text_file(task_path, "task")
    system = read_text_file(system_path, "system prompt") if system_path else build_system_instructions(shell_name)
    template = read_text_file(template_path, "task template") if template_path else DEFAULT_TASK_TEMPLATE
    if not task.strip():
        raise ConfigError(f"Task file {task_path} is empty.")
    if "task" not in {m.group(1) for m in _PLACEHOLDER.finditer(template)}:
        raise ConfigError("Task template has no {{ task }} placeholder.")
    return {
        "system": system,
        "task": render_template(template, {"task": task.strip()}),
    }
