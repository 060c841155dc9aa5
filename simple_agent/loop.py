"""
The agent control loop.

    Init -> AwaitModel -> Decoding -> Executing         -> AwaitModel
                                   -> RetryingMalformed -> AwaitModel | Terminated
                                   -> Terminated (Stop)

Strictly sequential: one outstanding model call or command at a time. A
turn is appended only after the call that produced it has returned, so a
KeyboardInterrupt at either suspension point leaves the transcript intact.
"""
import dataclasses
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import BackendError
from .journal import Journal
from .models import ModelClient
from .protocol import Malformed, RunCommand, Stop, decode, render_correction, render_observation
from .runner import CommandOutcome, CommandRunner
from .text import compress_for_llm
from .transcript import Role, Transcript, Turn

LOGGER = logging.getLogger(__name__)

# Which role may follow which; seeding covers system -> task.
_ALLOWED_PREDECESSOR = {
    Role.ASSISTANT: (Role.TASK, Role.OBSERVATION),
    Role.OBSERVATION: (Role.ASSISTANT,),
}


class LoopState(Enum):
    INIT = "init"
    AWAIT_MODEL = "await_model"
    DECODING = "decoding"
    EXECUTING = "executing"
    RETRYING_MALFORMED = "retrying_malformed"
    TERMINATED = "terminated"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    PROTOCOL_EXHAUSTED = "protocol-exhausted"
    BACKEND_ERROR = "backend-error"
    BUDGET_EXHAUSTED = "budget-exhausted"


@dataclass
class RunResult:
    run_id: str
    outcome: RunOutcome
    transcript: Transcript
    iterations: int
    malformed_replies: int
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is RunOutcome.SUCCESS


class AgentLoop:
    def __init__(
            self,
            client: ModelClient,
            runner: CommandRunner,
            *,
            max_iterations: Optional[int] = 50,
            max_seconds: Optional[float] = None,
            max_malformed_replies: Optional[int] = 3,
            compress_output: bool = False,
            journal: Optional[Journal] = None,
            reporter=None,
            clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.runner = runner
        self.max_iterations = max_iterations
        self.max_seconds = max_seconds
        self.max_malformed_replies = max_malformed_replies
        self.compress_output = compress_output
        self.journal = journal
        self.reporter = reporter
        self.clock = clock
        self.state = LoopState.INIT

    # -----------------------------
    # Helpers
    # -----------------------------

    def _append(self, transcript: Transcript, role: Role, content: str) -> None:
        previous = transcript.last.role if transcript.last else None
        if previous not in _ALLOWED_PREDECESSOR[role]:
            raise RuntimeError(f"{role.value} turn cannot follow {previous.value if previous else 'nothing'}")
        turn = Turn(role, content)
        transcript.append(turn)
        if self.journal:
            self.journal.record_turn(turn)

    def _report(self, event: str, *args) -> None:
        if self.reporter is not None:
            getattr(self.reporter, event)(*args)

    def _budget_exhausted(self, iterations: int, started: float) -> Optional[str]:
        if self.max_iterations is not None and iterations >= self.max_iterations:
            return f"iteration limit of {self.max_iterations} reached"
        if self.max_seconds is not None and self.clock() - started >= self.max_seconds:
            return f"time limit of {self.max_seconds} seconds reached"
        return None

    def _observe(self, outcome: CommandOutcome) -> str:
        if self.compress_output:
            outcome = dataclasses.replace(
                outcome,
                stdout=compress_for_llm(outcome.stdout),
                stderr=compress_for_llm(outcome.stderr),
            )
        return render_observation(outcome)

    # -----------------------------
    # Run
    # -----------------------------

    def run(self, system_text: str, task_text: str, run_id: Optional[str] = None) -> RunResult:
        """
        Drive one run to a terminal outcome. ConfigError from seeding is raised
        before any model call; backend failures end the run with BACKEND_ERROR.
        """
        run_id = run_id or uuid.uuid4().hex
        self.state = LoopState.INIT
        transcript = Transcript.seed(system_text, task_text)
        if self.journal:
            for turn in transcript:
                self.journal.record_turn(turn)
        self._report("on_start", run_id, task_text)

        iterations = 0
        malformed = 0
        total_malformed = 0
        started = self.clock()
        instruction = None
        outcome: Optional[RunOutcome] = None
        detail: Optional[str] = None

        self.state = LoopState.AWAIT_MODEL
        try:
            while self.state is not LoopState.TERMINATED:
                if self.state is LoopState.AWAIT_MODEL:
                    detail = self._budget_exhausted(iterations, started)
                    if detail:
                        outcome = RunOutcome.BUDGET_EXHAUSTED
                        self.state = LoopState.TERMINATED
                        continue
                    iterations += 1
                    if transcript.last.role is Role.OBSERVATION:
                        self._report("on_request", iterations, transcript.last.content)
                    try:
                        reply = self.client.complete(transcript.render_for_model())
                    except BackendError as e:
                        LOGGER.error("model backend failed: %s", e)
                        outcome, detail = RunOutcome.BACKEND_ERROR, str(e)
                        self.state = LoopState.TERMINATED
                        continue
                    self._append(transcript, Role.ASSISTANT, reply)
                    self._report("on_response", iterations, reply)
                    self.state = LoopState.DECODING

                elif self.state is LoopState.DECODING:
                    instruction = decode(transcript.last.content)
                    if isinstance(instruction, Stop):
                        outcome = RunOutcome.SUCCESS
                        self.state = LoopState.TERMINATED
                    elif isinstance(instruction, RunCommand):
                        malformed = 0
                        self.state = LoopState.EXECUTING
                    else:
                        self.state = LoopState.RETRYING_MALFORMED

                elif self.state is LoopState.EXECUTING:
                    result = self.runner.execute(instruction.command)
                    self._report("on_exec_result", result)
                    self._append(transcript, Role.OBSERVATION, self._observe(result))
                    self.state = LoopState.AWAIT_MODEL

                elif self.state is LoopState.RETRYING_MALFORMED:
                    if not isinstance(instruction, Malformed):
                        raise RuntimeError(f"cannot retry a {type(instruction).__name__} instruction")
                    malformed += 1
                    total_malformed += 1
                    LOGGER.warning("malformed reply %d: %s", malformed, instruction.reason)
                    self._report("on_malformed", instruction.reason, malformed, self.max_malformed_replies)
                    self._append(
                        transcript,
                        Role.OBSERVATION,
                        render_correction(instruction, malformed, self.max_malformed_replies),
                    )
                    if self.max_malformed_replies is not None and malformed >= self.max_malformed_replies:
                        outcome = RunOutcome.PROTOCOL_EXHAUSTED
                        detail = f"{malformed} consecutive malformed replies"
                        self.state = LoopState.TERMINATED
                    else:
                        self.state = LoopState.AWAIT_MODEL
        except KeyboardInterrupt:
            LOGGER.warning("run %s cancelled in state %s", run_id, self.state.value)
            if self.journal:
                self.journal.record_outcome("cancelled", self.state.value, iterations)
            raise

        result = RunResult(
            run_id=run_id,
            outcome=outcome,
            transcript=transcript,
            iterations=iterations,
            malformed_replies=total_malformed,
            detail=detail,
        )
        LOGGER.info("run %s finished: %s after %d iterations", run_id, outcome.value, iterations)
        if self.journal:
            self.journal.record_outcome(outcome.value, detail, iterations)
        self._report("on_finish", result)
        return result
