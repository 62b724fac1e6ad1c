"""
Weighted difficulty score for a set of selected questions.

    score = (easy*1 + medium*2 + hard*3) / total

An empty selection divides by 1 and lands on the "Básica" baseline.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable

WEIGHTS = {"easy": 1, "medium": 2, "hard": 3}

MEDIUM_THRESHOLD = 1.6
HIGH_THRESHOLD = 2.4

LEVEL_LABELS = {
    "low": "Básica",
    "medium": "Intermedia",
    "high": "Avanzada",
}


@dataclass(frozen=True)
class DifficultyReport:
    score: float
    level: str
    label: str
    counts: dict[str, int]
    distribution: dict[str, float]  # percentage of width per bucket

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "level": self.level,
            "label": self.label,
            "total": self.total,
            "counts": dict(self.counts),
            "distribution": dict(self.distribution),
        }


def classify(score: float) -> str:
    if score < MEDIUM_THRESHOLD:
        return "low"
    if score < HIGH_THRESHOLD:
        return "medium"
    return "high"


def score_difficulties(difficulties: Iterable[str]) -> DifficultyReport:
    counts = Counter()
    for d in difficulties:
        if d not in WEIGHTS:
            raise ValueError(f"Unknown difficulty: {d!r}")
        counts[d] += 1

    buckets = {name: counts.get(name, 0) for name in WEIGHTS}
    total = sum(buckets.values()) or 1

    score = sum(WEIGHTS[name] * n for name, n in buckets.items()) / total
    level = classify(score)

    return DifficultyReport(
        score=score,
        level=level,
        label=LEVEL_LABELS[level],
        counts=buckets,
        distribution={name: n / total * 100 for name, n in buckets.items()},
    )
