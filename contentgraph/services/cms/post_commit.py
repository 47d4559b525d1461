"""
Post-commit task queue.

Side effects that must run after the primary transaction commits (denormalization
recomputes) are enqueued here and drained inline. A failing task is retried up to
`max_attempts` times; tasks that never succeed are logged and kept on `failed` so
callers and tests can inspect them. Draining never raises.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

logger = logging.getLogger(__name__)


@dataclass
class PostCommitTask:
    name: str
    fn: Callable[..., Any]
    kwargs: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    error: Optional[BaseException] = None


class PostCommitQueue:
    """Ordered queue of side effects that run after commit."""

    def __init__(self, db: Session, max_attempts: int = 1):
        self.db = db
        self.max_attempts = max(1, max_attempts)
        self.pending: List[PostCommitTask] = []
        self.completed: List[PostCommitTask] = []
        self.failed: List[PostCommitTask] = []

    def enqueue(self, name: str, fn: Callable[..., Any], /, **kwargs) -> PostCommitTask:
        task = PostCommitTask(name=name, fn=fn, kwargs=kwargs)
        self.pending.append(task)
        return task

    def _run(self, task: PostCommitTask) -> bool:
        def rollback(retry_state: RetryCallState) -> None:
            task.error = retry_state.outcome.exception()
            self.db.rollback()

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "[PostCommit] Task %s failed (attempt %s/%s), retrying: %s",
                task.name, retry_state.attempt_number, self.max_attempts, task.error
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception_type(Exception),
            after=rollback,
            before_sleep=log_retry,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    task.attempts = attempt.retry_state.attempt_number
                    task.fn(**task.kwargs)
        except Exception:
            logger.exception("[PostCommit] Task %s failed after %s attempt(s)", task.name, task.attempts)
            return False
        return True

    def drain(self) -> int:
        """Run all pending tasks in enqueue order. Returns the number that succeeded."""
        succeeded = 0
        while self.pending:
            task = self.pending.pop(0)
            if self._run(task):
                self.completed.append(task)
                succeeded += 1
            else:
                self.failed.append(task)
        return succeeded
