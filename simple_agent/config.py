import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .models import OLLAMA_PLACEHOLDER_KEY, get_provider

ENV_OVERRIDES = {
    "SIMPLE_AGENT_PROVIDER": ("model", "provider"),
    "SIMPLE_AGENT_MODEL": ("model", "model"),
    "SIMPLE_AGENT_BASE_URL": ("model", "base_url"),
    "SIMPLE_AGENT_WORKDIR": ("agent", "workdir"),
    "SIMPLE_AGENT_MAX_ITERATIONS": ("agent", "max_iterations"),
}


@dataclass(frozen=True)
class AppConfig:
    provider: str
    model: str
    api_key: str
    base_url: Optional[str]
    reasoning_effort: Optional[str]
    request_timeout_seconds: Optional[float]
    workdir: Optional[str]
    shell: Optional[str]
    timeout_seconds: Optional[float]
    max_output_chars: int
    max_iterations: Optional[int]
    max_seconds: Optional[float]
    max_malformed_replies: int
    compress_output: bool
    env: Dict[str, str] = field(default_factory=dict)
    log_dir: Optional[str] = None
    system_path: Optional[str] = None
    task_path: Optional[str] = None
    template_path: Optional[str] = None


def _read_file(path: str) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(Path(path).expanduser().read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"config file {path} is not valid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping at the top level")
    return data


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"config section '{name}' must be a mapping")
    return dict(section)


def _optional_number(value: Any, name: str, kind=float, minimum=0):
    if value is None or value == "":
        return None
    try:
        number = kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Build the run configuration. Precedence, lowest first: config file,
    SIMPLE_AGENT_* environment variables, non-None `overrides` (CLI flags).
    `overrides` keys are "section.key", e.g. "model.model" or "agent.workdir".
    """
    data = _read_file(path) if path else {}
    model_cfg = _section(data, "model")
    agent_cfg = _section(data, "agent")
    prompts_cfg = _section(data, "prompts")
    sections = {"model": model_cfg, "agent": agent_cfg, "prompts": prompts_cfg}

    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            sections[section][key] = value

    for dotted, value in (overrides or {}).items():
        if value is None:
            continue
        section, _, key = dotted.partition(".")
        if section not in sections or not key:
            raise ValueError(f"bad override key: {dotted}")
        sections[section][key] = value

    preset = get_provider(model_cfg.get("provider", "openai"))
    model = model_cfg.get("model")
    if not model:
        raise ConfigError("Missing model name (set model.model, SIMPLE_AGENT_MODEL or --model).")

    api_key = model_cfg.get("api_key") or (os.environ.get(preset.api_key_env) if preset.api_key_env else None)
    if not api_key:
        if preset.api_key_env is None:
            api_key = OLLAMA_PLACEHOLDER_KEY
        else:
            raise ConfigError(f"Missing API key (set model.api_key or {preset.api_key_env}).")

    max_malformed = _optional_number(agent_cfg.get("max_malformed_replies", 3), "max_malformed_replies", int, 1)

    return AppConfig(
        provider=preset.name,
        model=str(model),
        api_key=str(api_key),
        base_url=model_cfg.get("base_url") or preset.base_url,
        reasoning_effort=model_cfg.get("reasoning_effort"),
        request_timeout_seconds=_optional_number(model_cfg.get("request_timeout_seconds"), "request_timeout_seconds"),
        workdir=agent_cfg.get("workdir"),
        shell=agent_cfg.get("shell"),
        # 0 means no per-command timeout
        timeout_seconds=_optional_number(agent_cfg.get("timeout_seconds", 120), "timeout_seconds") or None,
        max_output_chars=_optional_number(agent_cfg.get("max_output_chars", 16384), "max_output_chars", int) or 0,
        max_iterations=_optional_number(agent_cfg.get("max_iterations", 50), "max_iterations", int, 1),
        max_seconds=_optional_number(agent_cfg.get("max_seconds"), "max_seconds"),
        max_malformed_replies=max_malformed if max_malformed is not None else 3,
        compress_output=bool(agent_cfg.get("compress_output", False)),
        env={str(k): str(v) for k, v in (agent_cfg.get("env", {}) or {}).items()},
        log_dir=agent_cfg.get("log_dir"),
        system_path=prompts_cfg.get("system"),
        task_path=prompts_cfg.get("task"),
        template_path=prompts_cfg.get("task_template"),
    )
