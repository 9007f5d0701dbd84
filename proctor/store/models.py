from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

@dataclass
class SessionRecord:
    # Core identifiers
    sessionId: str = ""
    submissionId: str = ""

    # Deadline anchor (epoch seconds) and duration, fixed at start
    startedAt: float = 0.0
    durationMinutes: float = 0.0

    # Entry gate outcome; a blocked session never starts tracking
    blocked: bool = False

    # Serialized core state (DeadlineState.to_dict / MonitorState.to_dict)
    deadline: Dict[str, Any] = field(default_factory=dict)
    monitor: Dict[str, Any] = field(default_factory=dict)

    # TerminalSignal.to_dict, set exactly once
    terminal: Optional[Dict[str, Any]] = None
    # "manual" / "unmounted" when the session ended without a terminal signal
    closedReason: Optional[str] = None

    # Latest autosaved answers from the page
    answers: List[Dict[str, str]] = field(default_factory=list)
    outlineResponses: List[Dict[str, str]] = field(default_factory=list)
    answersUpdatedAtMs: int = 0

    # Submission delivery
    submitStatus: str = "none"  # none/queued/sent/failed
    confirmationStatus: Optional[str] = None  # completed/locked_out
    submitLedger: Dict[str, Any] = field(default_factory=dict)

    # Ops
    createdAtMs: int = 0
    lastUpdatedAtEpoch: Optional[int] = None

    @property
    def forcedByTimeout(self) -> bool:
        return bool(self.terminal and self.terminal.get("forcedByTimeout"))

    @property
    def forcedByLockdown(self) -> bool:
        return bool(self.terminal and self.terminal.get("forcedByLockdown"))

    @property
    def violations(self) -> List[Dict[str, Any]]:
        return list((self.monitor or {}).get("violations") or [])
