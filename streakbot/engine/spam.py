"""
streakbot.engine.spam — Short-Window Duplicate Message Filter
==============================================================

A message is spam when it arrives less than ``SPAM_WINDOW_MS`` after the
same user's previous counted message **and** is more than
``SPAM_SIMILARITY_THRESHOLD`` similar to it::

    similarity = (max_len - levenshtein(a, b)) / max_len

Spam is simply not counted; it does not update the user's slot, so a burst
of copies is measured against the last message that did count.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

from streakbot.constants import SPAM_SIMILARITY_THRESHOLD, SPAM_WINDOW_MS

logger = logging.getLogger(__name__)


def levenshtein(a: str, b: str) -> int:
    """Edit distance between *a* and *b* (insert / delete / substitute)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Return 0.0–1.0.  Two empty strings score 0.0 (nothing to compare)."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return (longest - levenshtein(a, b)) / longest


@dataclass(slots=True)
class _Slot:
    content: str
    at_ms: int


class SpamFilter:
    """Per-user last-message slots.  Thread-safe.

    Slots older than *stale_after_ms* are pruned at most once per
    *cleanup_interval_ms*.
    """

    def __init__(
        self,
        *,
        window_ms: int = SPAM_WINDOW_MS,
        threshold: float = SPAM_SIMILARITY_THRESHOLD,
        stale_after_ms: int = 3_600_000,
        cleanup_interval_ms: int = 600_000,
    ) -> None:
        self.window_ms = window_ms
        self.threshold = threshold
        self._stale_after_ms = stale_after_ms
        self._cleanup_interval_ms = cleanup_interval_ms
        self._lock = Lock()
        self._slots: dict[str, _Slot] = {}
        self._last_cleanup_ms = 0

    def is_spam(self, user_id: str, content: str, now_ms: int | None = None) -> bool:
        """Check *content* and, when it is not spam, remember it."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        with self._lock:
            self._maybe_cleanup(now_ms)
            slot = self._slots.get(user_id)
            if slot is not None:
                elapsed = now_ms - slot.at_ms
                if elapsed < self.window_ms and similarity(slot.content, content) > self.threshold:
                    logger.debug("Spam suppressed for user %s (%d ms apart)", user_id, elapsed)
                    return True
            self._slots[user_id] = _Slot(content=content, at_ms=now_ms)
            return False

    def forget(self, user_id: str) -> None:
        with self._lock:
            self._slots.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def _maybe_cleanup(self, now_ms: int) -> None:
        if now_ms - self._last_cleanup_ms < self._cleanup_interval_ms:
            return
        self._last_cleanup_ms = now_ms
        cutoff = now_ms - self._stale_after_ms
        stale = [uid for uid, slot in self._slots.items() if slot.at_ms <= cutoff]
        for uid in stale:
            del self._slots[uid]
        if stale:
            logger.debug("Pruned %d stale spam slots", len(stale))
