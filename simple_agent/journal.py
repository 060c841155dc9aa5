"""Append-only JSONL record of a run's turns, one file per run."""
import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .transcript import Turn


class Journal:
    def __init__(self, log_dir: str, run_id: str):
        self.run_id = run_id
        self.path = Path(log_dir).expanduser() / f"run-{run_id}.jsonl"
        self._index = 0

    def _write(self, entry: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def record_turn(self, turn: Turn) -> None:
        self._write({
            "run_id": self.run_id,
            "index": self._index,
            "role": turn.role.value,
            "content": turn.content,
            "timestamp": int(time.time()),
        })
        self._index += 1

    def record_outcome(self, outcome: str, detail: Optional[str] = None, iterations: int = 0) -> None:
        self._write({
            "run_id": self.run_id,
            "type": "outcome",
            "outcome": outcome,
            "detail": detail,
            "iterations": iterations,
            "timestamp": int(time.time()),
        })
