import re
from dataclasses import dataclass
from typing import Optional

MOBILE_UA = re.compile(r"Android|iPhone|iPad|iPod|webOS|BlackBerry|Opera Mini|IEMobile", re.IGNORECASE)
SMALL_SCREEN_WIDTH = 1024

BLOCKED_MESSAGE = (
    "This quiz must be taken on a desktop or laptop computer. "
    "Mobile phones and tablets cannot run the secure fullscreen mode it requires."
)


@dataclass(frozen=True)
class DeviceProfile:
    max_touch_points: int = 0
    screen_width: Optional[int] = None
    user_agent: str = ""


def is_lockdown_unsupported(device: Optional[DeviceProfile]) -> bool:
    """
    One-shot capability check, evaluated at session start only.
    Mobile user agent, or touch-capable with a small screen -> unsupported.
    A missing probe is treated as a desktop; the lockdown itself still applies.
    """
    if device is None:
        return False
    if MOBILE_UA.search(device.user_agent or ""):
        return True
    has_touch = int(device.max_touch_points or 0) > 0
    small_screen = device.screen_width is not None and int(device.screen_width) < SMALL_SCREEN_WIDTH
    return has_touch and small_screen
