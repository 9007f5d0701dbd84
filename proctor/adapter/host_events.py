"""
Host-event adapter: raw browser event names -> ViolationKind / session calls.

The page forwards every DOM event it listens for (fullscreenchange,
visibilitychange, blur, clipboard, drag/drop, keydown, contextmenu). This
module is the only place that knows those names; the core only sees the
closed ViolationKind set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from proctor.core.violations import ViolationKind

DEVTOOLS_KEYS = {"I", "J", "C", "K"}  # K = Firefox console

CLIPBOARD_EVENTS = {
    "copy": ViolationKind.COPY_ATTEMPT,
    "cut": ViolationKind.CUT_ATTEMPT,
    "paste": ViolationKind.PASTE_ATTEMPT,
}

# Translation results
VIOLATION = "violation"
FULLSCREEN_ENTERED = "fullscreen_entered"
FULLSCREEN_EXITED = "fullscreen_exited"
BLOCKED = "blocked"  # prevented by the host, never recorded
IGNORED = "ignored"


@dataclass(frozen=True)
class Translation:
    action: str
    kind: Optional[ViolationKind] = None
    # Whether the page should call preventDefault() on the original event
    prevent_default: bool = False


def _key_translation(data: Dict[str, Any]) -> Translation:
    key = str(data.get("key") or "")
    mod_key = bool(data.get("ctrlKey")) or bool(data.get("metaKey"))
    shift = bool(data.get("shiftKey"))

    if key == "F12":
        return Translation(VIOLATION, ViolationKind.DEVTOOLS_ATTEMPT, prevent_default=True)
    if mod_key and shift and key.upper() in DEVTOOLS_KEYS:
        return Translation(VIOLATION, ViolationKind.DEVTOOLS_ATTEMPT, prevent_default=True)
    # View source and print: blocked silently, no violation
    if mod_key and key.lower() in ("u", "p"):
        return Translation(BLOCKED, prevent_default=True)
    return Translation(IGNORED)


class HostEventTranslator:
    """
    Stateful only for drag tracking: a drop that ends a drag which started on
    the page is an internal rearrange, not an external drop.
    """

    def __init__(self) -> None:
        self.internal_drag = False

    def translate(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> Translation:
        data = data or {}
        name = str(event_type or "").strip().lower()

        if name == "fullscreenchange":
            if bool(data.get("fullscreen")):
                return Translation(FULLSCREEN_ENTERED)
            return Translation(FULLSCREEN_EXITED)

        if name == "visibilitychange":
            if bool(data.get("hidden")):
                return Translation(VIOLATION, ViolationKind.TAB_SWITCH)
            return Translation(IGNORED)

        if name == "blur":
            return Translation(VIOLATION, ViolationKind.WINDOW_BLUR)

        if name in CLIPBOARD_EVENTS:
            return Translation(VIOLATION, CLIPBOARD_EVENTS[name], prevent_default=True)

        if name == "dragstart":
            self.internal_drag = True
            return Translation(IGNORED)
        if name == "dragend":
            self.internal_drag = False
            return Translation(IGNORED)
        if name == "dragover":
            return Translation(BLOCKED, prevent_default=True)
        if name == "drop":
            if self.internal_drag:
                self.internal_drag = False
                return Translation(IGNORED)
            return Translation(VIOLATION, ViolationKind.DROP_ATTEMPT, prevent_default=True)

        if name == "keydown":
            return _key_translation(data)

        if name == "contextmenu":
            return Translation(BLOCKED, prevent_default=True)

        return Translation(IGNORED)
