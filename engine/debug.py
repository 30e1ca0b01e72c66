"""
Debug output for the interaction engine.

Lines are timestamped and tagged with the emitting component, and go to
stderr. Output is off until set_debug_enabled(True) is called.
"""

import sys
from datetime import datetime


_debug_enabled: bool = False


def set_debug_enabled(enabled: bool) -> None:
    global _debug_enabled
    _debug_enabled = enabled


def is_debug_enabled() -> bool:
    return _debug_enabled


def debug_print(tag: str, message: str) -> None:
    if not _debug_enabled:
        return
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] {tag}: {message}", file=sys.stderr)
