"""Receipt upload session state and its transition table."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal, get_args

from roundup.domain.manual_entry import ManualEntryForm
from roundup.domain.receipt import DEFAULT_ROUND_UP, Allocation, ParsedReceipt

SessionStep = Literal[
    "idle",
    "uploading",
    "extracting",
    "analyzing",
    "manual-entry",
    "completed",
    "error",
]

SESSION_STEPS: tuple[SessionStep, ...] = get_args(SessionStep)

# Steps that wait on a remote call; no user action is accepted meanwhile.
IN_FLIGHT_STEPS: frozenset[SessionStep] = frozenset({"uploading", "extracting", "analyzing"})

# Every step can also go back to "idle" through close/reset.
ALLOWED_TRANSITIONS: dict[SessionStep, frozenset[SessionStep]] = {
    "idle": frozenset({"idle", "uploading"}),
    "uploading": frozenset({"idle", "extracting", "error"}),
    "extracting": frozenset({"idle", "completed", "manual-entry"}),
    "manual-entry": frozenset({"idle", "analyzing"}),
    # analyzing serves both manual submission and confirmation
    "analyzing": frozenset({"idle", "completed", "error"}),
    "completed": frozenset({"idle", "analyzing", "manual-entry"}),
    "error": frozenset({"idle", "manual-entry"}),
}

# Position in the Upload -> Extract -> Analyze -> Complete progress bar
PROGRESS_STEPS = ("Upload", "Extract", "Analyze", "Complete")
_PROGRESS_INDEX: dict[SessionStep, int] = {
    "uploading": 0,
    "extracting": 1,
    "analyzing": 2,
    "completed": 3,
}


class InvalidTransitionError(RuntimeError):
    """Raised when an action is attempted from a step that does not allow it."""

    def __init__(self, current: SessionStep, target: SessionStep, action: str | None = None) -> None:
        if action:
            message = f"Cannot {action} while the receipt session is {current!r}"
        else:
            message = f"Cannot move receipt session from {current!r} to {target!r}"
        super().__init__(message)
        self.current = current
        self.target = target
        self.action = action


def can_transition(current: SessionStep, target: SessionStep) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: SessionStep, target: SessionStep) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def progress_index(step: SessionStep) -> int:
    """Index into PROGRESS_STEPS, or -1 for steps that show no progress."""
    return _PROGRESS_INDEX.get(step, -1)


@dataclass
class ReceiptUploadSession:
    """Everything one upload carries between steps.

    A reset session compares equal to a freshly constructed one.
    """

    step: SessionStep = "idle"
    receipt_id: int | None = None
    parsed_data: ParsedReceipt | None = None
    allocations: list[Allocation] = field(default_factory=list)
    total_round_up: Decimal = DEFAULT_ROUND_UP
    ai_provider: str = ""
    error: str | None = None
    manual_form: ManualEntryForm = field(default_factory=ManualEntryForm)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_busy(self) -> bool:
        return self.step in IN_FLIGHT_STEPS

    def move_to(self, target: SessionStep) -> None:
        """Change step after checking the transition table."""
        ensure_transition(self.step, target)
        self.step = target
