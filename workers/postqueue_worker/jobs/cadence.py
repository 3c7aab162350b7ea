from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IngestTarget:
    source: str
    category: str = "all"


def parse_ingest_targets(raw: str | None) -> list[IngestTarget]:
    """Parse ``source[:category]`` items separated by commas, dropping blanks and repeats."""
    targets: list[IngestTarget] = []
    for item in (raw or "").split(","):
        source, _, category = item.strip().partition(":")
        source = source.strip()
        if not source:
            continue
        target = IngestTarget(source=source, category=category.strip() or "all")
        if target not in targets:
            targets.append(target)
    return targets


def is_due(last_run_at: float | None, interval_seconds: float, *, now: float) -> bool:
    if last_run_at is None:
        return True
    return now - last_run_at >= interval_seconds
