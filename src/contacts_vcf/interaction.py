from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol

logger = logging.getLogger(__name__)


class MergeAction(Enum):
    PROMPT = "prompt"
    KEEP = "keep"
    OVERWRITE = "overwrite"
    MERGE = "merge"

    @classmethod
    def from_setting(cls, setting: str) -> "MergeAction":
        return cls(setting.strip().lower())


class RunStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class MergeDecision:
    """A user's answer to "this contact already exists": the action and whether to stop asking."""

    action: MergeAction
    always: bool = False


class ProgressReporter(Protocol):
    def report_progress(self, current: int, maximum: int) -> None: ...

    def report_message(self, text: str) -> None: ...


class ImportPrompter(Protocol):
    def show_error(self, message: str) -> None: ...

    def continue_or_abort(self, message: str) -> bool: ...

    def merge_decision(self, label: str) -> MergeDecision: ...


class CancellationToken:
    """Cooperative cancellation flag shared between a worker and whoever drives it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class LoggingProgressReporter:
    def __init__(self) -> None:
        self.current = 0
        self.maximum = 0

    def report_progress(self, current: int, maximum: int) -> None:
        self.current, self.maximum = current, maximum
        logger.debug("Progress %d/%d", current, maximum)

    def report_message(self, text: str) -> None:
        logger.info(text)


class NonInteractivePrompter:
    """
    Answers every prompt from fixed settings, logging what it was asked.

    Merge prompts are answered with ``merge_action`` (marked "always"), and
    per-vCard errors continue unless ``continue_on_error`` is False.
    """

    def __init__(self, merge_action: MergeAction = MergeAction.KEEP, continue_on_error: bool = True):
        if merge_action is MergeAction.PROMPT:
            raise ValueError("a non-interactive prompter cannot answer with PROMPT")
        self.merge_action = merge_action
        self.continue_on_error = continue_on_error
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def show_error(self, message: str) -> None:
        self.errors.append(message)
        logger.error(message)

    def continue_or_abort(self, message: str) -> bool:
        self.warnings.append(message)
        logger.warning("%s (%s)", message, "continuing" if self.continue_on_error else "aborting")
        return self.continue_on_error

    def merge_decision(self, label: str) -> MergeDecision:
        logger.info("%s already exists; answering %s", label, self.merge_action.value)
        return MergeDecision(self.merge_action, always=True)


class PromptKind(Enum):
    ERROR = "error"
    CONTINUE_OR_ABORT = "continue_or_abort"
    MERGE = "merge"


@dataclass(frozen=True)
class PromptRequest:
    kind: PromptKind
    message: str


class QueuePrompter:
    """
    Forwards prompts to another thread (typically a UI) over a request queue
    and blocks until the answer arrives on the reply queue.

    Replies are: anything for ERROR (an acknowledgement), a bool for
    CONTINUE_OR_ABORT and a :class:`MergeDecision` for MERGE. While waiting
    the cancellation token is polled; a cancelled wait is answered as "abort"
    (or KEEP for merges).
    """

    def __init__(
        self,
        requests: "queue.Queue[PromptRequest]",
        replies: "queue.Queue[Any]",
        cancel: Optional[CancellationToken] = None,
        poll_interval: float = 0.1,
    ):
        self.requests = requests
        self.replies = replies
        self.cancel = cancel
        self.poll_interval = poll_interval

    def _ask(self, kind: PromptKind, message: str) -> Any:
        self.requests.put(PromptRequest(kind, message))
        while True:
            try:
                return self.replies.get(timeout=self.poll_interval)
            except queue.Empty:
                if self.cancel is not None and self.cancel.is_cancelled():
                    logger.debug("Prompt %s abandoned after cancellation", kind.value)
                    return None

    def show_error(self, message: str) -> None:
        self._ask(PromptKind.ERROR, message)

    def continue_or_abort(self, message: str) -> bool:
        return bool(self._ask(PromptKind.CONTINUE_OR_ABORT, message))

    def merge_decision(self, label: str) -> MergeDecision:
        reply = self._ask(PromptKind.MERGE, label)
        if not isinstance(reply, MergeDecision):
            return MergeDecision(MergeAction.KEEP)
        return reply


__all__ = [
    "CancellationToken",
    "ImportPrompter",
    "LoggingProgressReporter",
    "MergeAction",
    "MergeDecision",
    "NonInteractivePrompter",
    "ProgressReporter",
    "PromptKind",
    "PromptRequest",
    "QueuePrompter",
    "RunStatus",
]
