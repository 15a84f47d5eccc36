# src/querydeck/detection/detector.py
"""
Weighted-pattern dialect detection.

Each EngineDetectorPlugin carries an ordered list of DetectionPatterns. The
detector sums the weights of every pattern that matches the statement, per
plugin, and picks the highest score as long as it is positive and clears the
runner-up by MIN_SCORE_DIFFERENCE. Anything else is reported as "unknown".

The registry is an explicit object so callers (and tests) can hold their own
set of plugins; default_registry() builds one with the built-in plugins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Pattern, Tuple, Union

from querydeck import constants as C

Confidence = Literal["high", "medium", "low"]

_CONFIDENCE_RANK = {"low": 0, "medium": 1, "high": 2}


def confidence_at_least(value: str, minimum: str) -> bool:
    """True when `value` is the same or a stronger confidence than `minimum`."""
    return _CONFIDENCE_RANK.get(value, 0) >= _CONFIDENCE_RANK.get(minimum, 0)


@dataclass(frozen=True)
class DetectionPattern:
    pattern: Pattern[str]
    signal: str
    weight: int

    def __post_init__(self) -> None:
        if not 1 <= self.weight <= 10:
            raise ValueError(f"Pattern weight must be between 1 and 10, got {self.weight} ({self.signal})")

    @classmethod
    def of(cls, regex: str, signal: str, weight: int, flags: int = re.IGNORECASE) -> "DetectionPattern":
        return cls(re.compile(regex, flags), signal, weight)

    def matches(self, sql: str) -> bool:
        return self.pattern.search(sql) is not None


@dataclass(frozen=True)
class EngineDetectorPlugin:
    engine_id: str
    patterns: Tuple[DetectionPattern, ...]

    def score(self, sql: str) -> Tuple[int, List[str]]:
        """Sum of matched weights and the matched signals, in pattern order."""
        total = 0
        signals: List[str] = []
        for p in self.patterns:
            if p.matches(sql):
                total += p.weight
                signals.append(p.signal)
        return total, signals


@dataclass(frozen=True)
class EngineDetection:
    engine: str
    confidence: Confidence
    signals: List[str] = field(default_factory=list)
    scores: Dict[str, int] = field(default_factory=dict)

    @property
    def is_unknown(self) -> bool:
        return self.engine == C.UNKNOWN_ENGINE

    def to_dict(self) -> Dict[str, object]:
        return {
            "engine": self.engine,
            "confidence": self.confidence,
            "signals": list(self.signals),
            "scores": dict(self.scores),
        }


class EngineDetectorRegistry:
    """
    Plugin registry keyed by engine id.

    register() replaces an existing plugin with the same id; registration
    order is kept so ties resolve deterministically (first registered wins).
    """

    def __init__(
        self,
        plugins: Iterable[EngineDetectorPlugin] = (),
        *,
        high_confidence_score: int = C.HIGH_CONFIDENCE_SCORE,
        medium_confidence_score: int = C.MEDIUM_CONFIDENCE_SCORE,
        min_score_difference: int = C.MIN_SCORE_DIFFERENCE,
    ):
        self._plugins: Dict[str, EngineDetectorPlugin] = {}
        self.high_confidence_score = high_confidence_score
        self.medium_confidence_score = medium_confidence_score
        self.min_score_difference = min_score_difference
        for plugin in plugins:
            self.register(plugin)

    # ------------------------------ Registration ------------------------------

    def register(self, plugin: EngineDetectorPlugin) -> None:
        self._plugins[plugin.engine_id] = plugin

    def unregister(self, engine_id: str) -> bool:
        return self._plugins.pop(engine_id, None) is not None

    def get(self, engine_id: str) -> Optional[EngineDetectorPlugin]:
        return self._plugins.get(engine_id)

    def registered_engines(self) -> List[str]:
        return list(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, engine_id: object) -> bool:
        return engine_id in self._plugins

    # ------------------------------ Detection ---------------------------------

    def _confidence(self, score: int) -> Confidence:
        if score >= self.high_confidence_score:
            return "high"
        if score >= self.medium_confidence_score:
            return "medium"
        return "low"

    def detect(self, sql: str) -> EngineDetection:
        """Score `sql` against every plugin and pick a winner, if any."""
        scores = {engine_id: 0 for engine_id in self._plugins}
        if not sql or not sql.strip():
            return EngineDetection(C.UNKNOWN_ENGINE, "low", [], scores)

        text = sql.strip()
        matched: Dict[str, List[str]] = {}
        for engine_id, plugin in self._plugins.items():
            score, signals = plugin.score(text)
            scores[engine_id] = score
            matched[engine_id] = signals

        # sorted() is stable, so equal scores keep registration order
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        if not ranked or ranked[0][1] <= 0:
            return EngineDetection(C.UNKNOWN_ENGINE, "low", [], scores)

        top_id, top_score = ranked[0]
        runner_id, runner_score = ranked[1] if len(ranked) > 1 else (None, 0)

        if top_score - runner_score < self.min_score_difference:
            signals = list(matched[top_id])
            if runner_id is not None:
                signals += matched[runner_id]
            return EngineDetection(C.UNKNOWN_ENGINE, "low", signals, scores)

        return EngineDetection(top_id, self._confidence(top_score), list(matched[top_id]), scores)

    def has_engine_signals(self, sql: str) -> bool:
        """True when any plugin pattern matches, even without a clear winner."""
        return any(score > 0 for score in self.detect(sql).scores.values())


PatternSpec = Union[DetectionPattern, Tuple[str, str, int]]


def make_plugin(engine_id: str, patterns: Iterable[PatternSpec]) -> EngineDetectorPlugin:
    """Build a plugin from DetectionPatterns or (regex, signal, weight) tuples."""
    built: List[DetectionPattern] = []
    for p in patterns:
        if isinstance(p, DetectionPattern):
            built.append(p)
        else:
            regex, signal, weight = p
            built.append(DetectionPattern.of(regex, signal, weight))
    return EngineDetectorPlugin(engine_id, tuple(built))
