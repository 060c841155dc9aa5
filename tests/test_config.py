from __future__ import annotations

import pytest

from simple_agent.config import ENV_OVERRIDES, load_config
from simple_agent.errors import ConfigError
from simple_agent.models import OLLAMA_PLACEHOLDER_KEY


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in [*ENV_OVERRIDES, "OPENAI_API_KEY", "OPENROUTER_API_KEY"]:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, text: str) -> str:
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_config_from_file(tmp_path) -> None:
    path = _write(
        tmp_path,
        """
model:
  provider: openai
  model: gpt-4.1-mini
  api_key: test-key
  reasoning_effort: medium
agent:
  workdir: /workspace
  timeout_seconds: 30
  max_output_chars: 100
  max_iterations: 7
  max_seconds: 60
  max_malformed_replies: 2
  compress_output: true
  log_dir: logs
  env:
    FOO: 1
prompts:
  system: system.md
  task: task.md
  task_template: task_template.md
""",
    )

    cfg = load_config(path)

    assert cfg.provider == "openai"
    assert cfg.model == "gpt-4.1-mini"
    assert cfg.api_key == "test-key"
    assert cfg.base_url is None
    assert cfg.reasoning_effort == "medium"
    assert cfg.workdir == "/workspace"
    assert cfg.timeout_seconds == 30
    assert cfg.max_output_chars == 100
    assert cfg.max_iterations == 7
    assert cfg.max_seconds == 60
    assert cfg.max_malformed_replies == 2
    assert cfg.compress_output is True
    assert cfg.env == {"FOO": "1"}
    assert cfg.log_dir == "logs"
    assert (cfg.system_path, cfg.task_path, cfg.template_path) == ("system.md", "task.md", "task_template.md")


def test_defaults_without_file() -> None:
    cfg = load_config(None, {"model.provider": "ollama", "model.model": "qwen"})

    assert cfg.base_url == "http://localhost:11434/v1"
    assert cfg.api_key == OLLAMA_PLACEHOLDER_KEY
    assert cfg.max_iterations == 50
    assert cfg.max_seconds is None
    assert cfg.max_malformed_replies == 3
    assert cfg.timeout_seconds == 120
    assert cfg.max_output_chars == 16384
    assert cfg.compress_output is False
    assert cfg.task_path is None


def test_openrouter_key_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")

    cfg = load_config(None, {"model.provider": "openrouter", "model.model": "deepseek/deepseek-chat"})

    assert cfg.api_key == "or-key"
    assert cfg.base_url == "https://openrouter.ai/api/v1"


def test_missing_api_key_is_config_error() -> None:
    with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
        load_config(None, {"model.model": "gpt-4.1-mini"})


def test_missing_model_is_config_error() -> None:
    with pytest.raises(ConfigError, match="model"):
        load_config(None, {"model.provider": "ollama"})


def test_unknown_provider_is_config_error() -> None:
    with pytest.raises(ConfigError, match="provider"):
        load_config(None, {"model.provider": "bedrock", "model.model": "x"})


def test_precedence_file_env_overrides(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, "model:\n  provider: ollama\n  model: from-file\nagent:\n  max_iterations: 5\n")
    monkeypatch.setenv("SIMPLE_AGENT_MODEL", "from-env")
    monkeypatch.setenv("SIMPLE_AGENT_MAX_ITERATIONS", "9")

    assert load_config(path).model == "from-env"
    assert load_config(path).max_iterations == 9
    assert load_config(path, {"model.model": "from-cli", "agent.max_iterations": None}).model == "from-cli"
    assert load_config(path, {"agent.max_iterations": 3}).max_iterations == 3


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "model: [1, 2]\n",
        "model:\n  model: x\n bad indent: [\n",
    ],
)
def test_invalid_config_file(tmp_path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, text))


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(ConfigError, match="failed to read"):
        load_config(str(tmp_path / "nope.yml"))


def test_zero_timeout_disables_command_timeout() -> None:
    cfg = load_config(None, {"model.provider": "ollama", "model.model": "m", "agent.timeout_seconds": 0})

    assert cfg.timeout_seconds is None


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("agent.max_iterations", "many"),
        ("agent.max_iterations", 0),
        ("agent.timeout_seconds", -1),
        ("agent.max_malformed_replies", 0),
    ],
)
def test_invalid_numbers(key: str, value: object) -> None:
    with pytest.raises(ConfigError):
        load_config(None, {"model.provider": "ollama", "model.model": "m", key: value})
