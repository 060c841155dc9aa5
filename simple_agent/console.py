"""Human-readable progress printed while a run is in flight."""
from typing import Optional

from .text import clip_text, format_shell_text


class ConsoleReporter:
    def __init__(self, preview_chars: int = 2048, show_task: bool = True):
        self.preview_chars = preview_chars
        self.show_task = show_task

    def on_start(self, run_id: str, task_text: str) -> None:
        print(f"Run ID: {run_id}")
        if self.show_task:
            print("---")
            print("## First request")
            print(task_text)
            print()
        print("> Sending first request (may take a short while with a local model)")

    def on_request(self, iteration: int, observation: str) -> None:
        print(f"\n## Request {iteration}")
        print(observation, end="" if observation.endswith("\n") else "\n")

    def on_response(self, iteration: int, reply: str) -> None:
        print(f"\n## Response {iteration}")
        print(reply)

    def on_exec_result(self, outcome) -> None:
        stdout_text = clip_text(format_shell_text(outcome.stdout or ""), self.preview_chars)
        stderr_text = clip_text(format_shell_text(outcome.stderr or ""), self.preview_chars)

        print("\n[EXEC RESULT]")
        print(f"exit_code: {outcome.exit_code}")
        print(f"timed_out: {outcome.timed_out}")
        print(f"elapsed_seconds: {outcome.elapsed_seconds}")

        print("\n[STDOUT]")
        if stdout_text:
            print(stdout_text, end="" if stdout_text.endswith("\n") else "\n")
        else:
            print("(empty)")

        if stderr_text:
            print("\n[STDERR]")
            print(stderr_text, end="" if stderr_text.endswith("\n") else "\n")

    def on_malformed(self, reason: str, count: int, limit: Optional[int]) -> None:
        bound = f"{count}/{limit}" if limit is not None else str(count)
        print(f"\n## Error parsing response ({bound})")
        print(reason)

    def on_finish(self, result) -> None:
        print("\n**********")
        print(f"Outcome: {result.outcome.value}")
        if result.detail:
            print(f"Detail: {result.detail}")
        print(f"Iterations: {result.iterations}")
        print("**********")
