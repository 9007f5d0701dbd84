"""
Violation kinds and their two-tier classification.

INSTANT (cheating attempts, never accidental):
  copy, cut, paste, external drop, devtools shortcuts
  -> forced submission on first occurrence.

ENVIRONMENTAL (context loss, can be accidental once):
  fullscreen exit, tab switch, window blur
  -> first occurrence warns; once the strike limit is exceeded -> forced submission.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from proctor.utils.time import parse_timestamp, to_iso


class ViolationKind(str, Enum):
    FULLSCREEN_EXIT = "fullscreen_exit"
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    COPY_ATTEMPT = "copy_attempt"
    PASTE_ATTEMPT = "paste_attempt"
    CUT_ATTEMPT = "cut_attempt"
    DROP_ATTEMPT = "drop_attempt"
    DEVTOOLS_ATTEMPT = "devtools_attempt"


class ViolationClass(str, Enum):
    INSTANT = "instant"
    ENVIRONMENTAL = "environmental"


_CLASSIFICATION: Dict[ViolationKind, ViolationClass] = {
    ViolationKind.FULLSCREEN_EXIT: ViolationClass.ENVIRONMENTAL,
    ViolationKind.TAB_SWITCH: ViolationClass.ENVIRONMENTAL,
    ViolationKind.WINDOW_BLUR: ViolationClass.ENVIRONMENTAL,
    ViolationKind.COPY_ATTEMPT: ViolationClass.INSTANT,
    ViolationKind.PASTE_ATTEMPT: ViolationClass.INSTANT,
    ViolationKind.CUT_ATTEMPT: ViolationClass.INSTANT,
    ViolationKind.DROP_ATTEMPT: ViolationClass.INSTANT,
    ViolationKind.DEVTOOLS_ATTEMPT: ViolationClass.INSTANT,
}


def parse_kind(raw: Any) -> Optional[ViolationKind]:
    """Return the ViolationKind for a raw value, or None if it is not one."""
    if isinstance(raw, ViolationKind):
        return raw
    try:
        return ViolationKind(str(raw or "").strip().lower())
    except ValueError:
        return None


def classify(kind: ViolationKind) -> ViolationClass:
    return _CLASSIFICATION[kind]


@dataclass(frozen=True)
class Violation:
    """One append-only audit trail entry."""

    kind: ViolationKind
    timestamp: float  # epoch seconds
    occurrence_index: int  # 1-based count of this kind so far

    @property
    def violation_class(self) -> ViolationClass:
        return classify(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        # Wire shape shared with the submission API's lockdown_events
        return {
            "type": self.kind.value,
            "timestamp": to_iso(self.timestamp),
            "count": self.occurrence_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Violation":
        kind = parse_kind(data.get("type"))
        if kind is None:
            raise ValueError(f"unknown violation type: {data.get('type')!r}")
        return cls(
            kind=kind,
            timestamp=parse_timestamp(data.get("timestamp")),
            occurrence_index=int(data.get("count") or 0),
        )
