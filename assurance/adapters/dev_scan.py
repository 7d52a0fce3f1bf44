"""
Dev Scan Pipeline (P4 Implementation).

Stands in for the hosted accessibility scan engine during local
development and tests. Scores are deterministic per resource so that
report deltas are stable.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import uuid4

from assurance.core.ports.jobs import ScanResult

logger = logging.getLogger(__name__)


def _stable_score(resource_ref: str) -> float:
    """Score in [50, 100) derived from the resource reference."""
    digest = hashlib.sha256(resource_ref.encode("utf-8")).digest()
    return float(50 + digest[0] % 50)


@dataclass
class DevScanPipeline:
    """
    Scan pipeline that fabricates results.

    Configure per-resource behaviour with `scores` and `failing`, or pass
    a `scan_callback` to take over completely.
    """

    scores: dict[str, float] = field(default_factory=dict)
    failing: set[str] = field(default_factory=set)
    scan_callback: Callable[[str], ScanResult] | None = None
    calls: list[str] = field(default_factory=list)

    def scan(self, resource_ref: str) -> ScanResult:
        self.calls.append(resource_ref)
        if self.scan_callback is not None:
            return self.scan_callback(resource_ref)

        if resource_ref in self.failing:
            logger.info("Dev scanner: simulated failure for %s", resource_ref)
            return ScanResult(success=False, error=f"Scan of {resource_ref} failed")

        score = self.scores.get(resource_ref, _stable_score(resource_ref))
        logger.info("Dev scanner: %s scored %.0f", resource_ref, score)
        return ScanResult(success=True, score=score, scan_id=f"scan-{uuid4().hex[:12]}")

    @property
    def call_count(self) -> int:
        return len(self.calls)
