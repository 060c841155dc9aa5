from __future__ import annotations

import pytest
import yaml

from simple_agent.protocol import (
    Malformed,
    RunCommand,
    Stop,
    decode,
    render_correction,
    render_observation,
)
from simple_agent.runner import CommandOutcome


def test_decode_stop() -> None:
    instruction = decode('thoughts:\n  - "all done"\nrun: STOP')

    assert instruction == Stop(thoughts=("all done",))


@pytest.mark.parametrize(
    "reply",
    [
        "run: STOP",
        "run: '  STOP  '",
        "thoughts: []\nrun: |\n  STOP\n",
        "thoughts:\n  - done\nrun: STOP\n\n",
    ],
)
def test_decode_stop_after_trimming(reply: str) -> None:
    assert isinstance(decode(reply), Stop)


@pytest.mark.parametrize(
    ("reply", "command"),
    [
        ("run: stop", "stop"),
        ("run: STOPPED", "STOPPED"),
        ("run: |\n  echo STOP\n", "echo STOP\n"),
        ("run: |\n  STOP\n  ls\n", "STOP\nls\n"),
    ],
)
def test_stop_keyword_must_be_the_whole_value(reply: str, command: str) -> None:
    assert decode(reply) == RunCommand(thoughts=(), command=command)


def test_decode_run_command() -> None:
    reply = 'thoughts:\n  - "This is a thought"\n  - "This is another thought"\nrun: "ls -la"'

    assert decode(reply) == RunCommand(
        thoughts=("This is a thought", "This is another thought"),
        command="ls -la",
    )


@pytest.mark.parametrize(
    ("reply", "command"),
    [
        ("run: true", "true"),
        ("run: yes", "yes"),
        ("run: 42", "42"),
        ("run: 1.50", "1.50"),
        ("run: 2024-01-01", "2024-01-01"),
        ("thoughts:\n  - check\nrun: false", "false"),
    ],
)
def test_decode_plain_scalar_run_is_its_text(reply: str, command: str) -> None:
    instruction = decode(reply)

    assert isinstance(instruction, RunCommand)
    assert instruction.command == command


def test_decode_keeps_multiline_command_verbatim() -> None:
    reply = (
        "thoughts:\n"
        "  - check\n"
        "run: |\n"
        "  if true; then\n"
        "    echo  two   spaces\n"
        "  fi\n"
    )

    instruction = decode(reply)

    assert isinstance(instruction, RunCommand)
    assert instruction.command == "if true; then\n  echo  two   spaces\nfi\n"


@pytest.mark.parametrize("opener", ["```yaml", "```yml", "```"])
def test_decode_strips_code_fence(opener: str) -> None:
    reply = f"{opener}\nthoughts:\n  - \"a\"\nrun: |\n    ls -la\n    echo 'hello' > hello.txt\n```"

    assert decode(reply) == RunCommand(
        thoughts=("a",),
        command="ls -la\necho 'hello' > hello.txt\n",
    )


def test_decode_ignores_unknown_fields() -> None:
    reply = "thoughts: [a]\nconfidence: high\nplan:\n  - x\nrun: pwd"

    assert decode(reply) == RunCommand(thoughts=("a",), command="pwd")


def test_decode_coerces_thoughts() -> None:
    assert decode("run: ls").thoughts == ()
    assert decode("thoughts: just one\nrun: ls").thoughts == ("just one",)
    assert decode("thoughts:\n  - 42\n  - true\nrun: ls").thoughts == ("42", "True")


@pytest.mark.parametrize(
    "reply",
    [
        "not yaml at all",
        "",
        "   \n",
        "thoughts:\n  - no run here\n",
        "run: [1, 2]",
        "run: '   '",
        "run:",
        "thoughts: {a: 1}\nrun: ls",
        "thoughts:\n  - [nested]\nrun: ls",
        "- a\n- b",
        "run: 'unterminated",
        "thoughts: a: b\nrun: ls",
    ],
)
def test_decode_malformed(reply: str) -> None:
    instruction = decode(reply)

    assert isinstance(instruction, Malformed)
    assert instruction.raw == reply
    assert instruction.reason


def test_malformed_reason_names_missing_run() -> None:
    instruction = decode("thoughts:\n  - hi\n")

    assert isinstance(instruction, Malformed)
    assert "'run'" in instruction.reason


def test_render_observation_scenario() -> None:
    text = render_observation(CommandOutcome(stdout="hi\n", stderr="", exit_code=0))

    assert text.splitlines() == [
        'stdout: "hi\\n"',
        'stderr: ""',
        "exit_code: 0",
    ]


def test_render_observation_absent_exit_code() -> None:
    text = render_observation(CommandOutcome(stdout="", stderr="boom", exit_code=None))

    assert "exit_code: null" in text
    assert 'stdout: ""' in text


@pytest.mark.parametrize(
    "outcome",
    [
        CommandOutcome(stdout="hi\n", stderr="", exit_code=0),
        CommandOutcome(stdout="", stderr="", exit_code=None),
        CommandOutcome(stdout='quotes " and \\ backslash', stderr="tab\there", exit_code=2),
        CommandOutcome(stdout="  leading and trailing  ", stderr="\r\nwindows\r\n", exit_code=1),
        CommandOutcome(stdout="unicode: héllo ✓ 🙂", stderr="x" * 500 + " " + "y" * 500, exit_code=127),
        CommandOutcome(stdout="key: value\n- item\n# comment", stderr="STOP", exit_code=-9),
    ],
)
def test_render_observation_parses_back(outcome: CommandOutcome) -> None:
    parsed = yaml.safe_load(render_observation(outcome))

    assert parsed == {
        "stdout": outcome.stdout,
        "stderr": outcome.stderr,
        "exit_code": outcome.exit_code,
    }


def test_render_correction_carries_reason() -> None:
    malformed = Malformed(raw="not yaml at all", reason="Reply must be a YAML mapping")

    parsed = yaml.safe_load(render_correction(malformed, attempt=1, limit=3))

    assert parsed["error"] == "Error parsing response"
    assert parsed["reason"] == "Reply must be a YAML mapping"
    assert "thoughts" in parsed["expected"]
    assert parsed["attempts_left"] == 2
