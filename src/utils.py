# utils.py
# Utility functions for the preprocessing server: cache key derivation and
# per-stage request timing.

import hashlib
import json
import time
from typing import Any, Dict, Optional


def content_cache_key(content: str, options: Optional[Dict[str, Any]] = None) -> str:
    """
    Derive a stable cache key from the content and the options that shaped it.
    The same content preprocessed under different options gets different keys.
    """
    options_blob = json.dumps(options or {}, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha1()
    digest.update((content or "").encode("utf-8", errors="replace"))
    digest.update(b"\x00")
    digest.update(options_blob.encode("utf-8"))
    return digest.hexdigest()


class StageTimer:
    """
    Records how long each named step of a preprocessing request took.
    A disabled timer ignores marks, so callers never need to branch on it.
    """

    def __init__(self, enabled: bool = True):
        self.enabled: bool = enabled
        self._last: float = time.monotonic()
        self._started: float = self._last
        self._stages: Dict[str, float] = {}

    def mark(self, stage: str):
        if not self.enabled:
            return
        now = time.monotonic()
        self._stages[stage] = self._stages.get(stage, 0.0) + (now - self._last)
        self._last = now

    def durations_ms(self) -> Dict[str, float]:
        return {stage: round(seconds * 1000.0, 3) for stage, seconds in self._stages.items()}

    @property
    def total_ms(self) -> float:
        return round((self._last - self._started) * 1000.0, 3)

    def summary(self) -> str:
        if not self.enabled or not self._stages:
            return "Stage timing disabled or nothing recorded."
        parts = [f"{stage}={ms:.3f}ms" for stage, ms in self.durations_ms().items()]
        return f"Stage timings ({self.total_ms:.3f}ms total): " + ", ".join(parts)
