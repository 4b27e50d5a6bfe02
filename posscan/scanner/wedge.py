"""
==============================================================================
Keyboard Wedge Scanner Module
==============================================================================

Recognizes barcodes typed by keyboard-wedge scanners.

Handheld terminals such as the Zebra MC3300 emulate a keyboard: a scan
arrives as a burst of keystrokes a few milliseconds apart, usually followed
by Enter. Humans type far slower, so the gap between keystrokes tells a scan
apart from manual typing.

Rules:
------
- A gap longer than ``max_delay_ms`` discards the partial buffer
- Keystrokes with ctrl/alt/meta held are ignored
- Named keys other than Enter are ignored
- Slow typing into an input field passes through untouched
- Enter completes the buffer; ``flush()`` completes it when Enter is missing
- Completed buffers are trimmed, stripped of one known prefix and one known
  suffix, and dropped when shorter than ``min_length``

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel, Field

from .models import ScanResult, ScanSource


# Module logger
logger = logging.getLogger(__name__)


ENTER_KEY = "Enter"


class KeyEvent(BaseModel):
    """
    Single keystroke forwarded from the client.

    Attributes:
        key: Key value as reported by the browser ("5", "A", "Enter")
        timestamp: Milliseconds on the client's clock
        ctrl / alt / meta: Modifier state
        in_input_field: Whether focus was in an editable element
    """

    key: str = Field(..., min_length=1)
    timestamp: float = Field(..., ge=0)
    ctrl: bool = False
    alt: bool = False
    meta: bool = False
    in_input_field: bool = False

    @property
    def has_modifier(self) -> bool:
        return self.ctrl or self.alt or self.meta


class KeyboardWedgeBuffer:
    """
    Keystroke accumulator for keyboard-wedge scanners.

    Example:
        >>> buffer = KeyboardWedgeBuffer(min_length=4, max_delay_ms=50)
        >>> for i, key in enumerate("12345"):
        ...     buffer.feed(KeyEvent(key=key, timestamp=i * 10))
        >>> buffer.feed(KeyEvent(key="Enter", timestamp=60)).barcode
        '12345'
    """

    def __init__(
        self,
        min_length: int = 4,
        max_delay_ms: float = 50,
        prefixes: Iterable[str] = (),
        suffixes: Iterable[str] = (),
    ) -> None:
        self._min_length = min_length
        self._max_delay_ms = max_delay_ms
        self._prefixes: Tuple[str, ...] = tuple(p for p in prefixes if p)
        self._suffixes: Tuple[str, ...] = tuple(s for s in suffixes if s)

        self._buffer = ""
        self._last_keystroke: float = 0.0

    @property
    def buffer(self) -> str:
        """Characters collected so far."""
        return self._buffer

    @property
    def is_scanning(self) -> bool:
        """Whether a scan burst is in progress."""
        return bool(self._buffer)

    def feed(self, event: KeyEvent) -> Optional[ScanResult]:
        """
        Process one keystroke.

        Args:
            event: Keystroke with client timestamp

        Returns:
            ScanResult when the keystroke completed a barcode, otherwise None
        """
        gap = event.timestamp - self._last_keystroke

        if gap > self._max_delay_ms and self._buffer:
            self.clear()

        if event.has_modifier:
            return None
        if len(event.key) > 1 and event.key != ENTER_KEY:
            return None

        # Manual typing into a form field
        if event.in_input_field and gap > self._max_delay_ms:
            return None

        self._last_keystroke = event.timestamp

        if event.key == ENTER_KEY:
            result = None
            if len(self._buffer) >= self._min_length:
                result = self._process(self._buffer)
            self.clear()
            return result

        self._buffer += event.key
        return None

    def flush(self) -> Optional[ScanResult]:
        """
        Complete the buffer without a trailing Enter.

        Called by the idle timer once keystrokes stop arriving.
        """
        result = None
        if len(self._buffer) >= self._min_length:
            result = self._process(self._buffer)
        self.clear()
        return result

    def clear(self) -> None:
        """Discard the partial buffer."""
        self._buffer = ""

    def _process(self, raw: str) -> Optional[ScanResult]:
        barcode = raw.strip()

        for prefix in self._prefixes:
            if barcode.startswith(prefix):
                barcode = barcode[len(prefix):]
                break

        for suffix in self._suffixes:
            if barcode.endswith(suffix):
                barcode = barcode[:-len(suffix)]
                break

        if len(barcode) < self._min_length:
            return None

        logger.debug(f"Wedge scan completed: {barcode}")
        return ScanResult(barcode=barcode, source=ScanSource.KEYBOARD)
