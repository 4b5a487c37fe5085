"""
Default quote validator: plausibility rules for one record and
consistency checks across records for the same symbol.

Each rule returns its own confidence; the record's confidence is the
mean over rules and it is valid only when no rule reported an issue.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .base import CrossValidationOutcome, SourceRecord, ValidationOutcome


Rule = Callable[[SourceRecord], Tuple[float, List[str]]]


@dataclass(frozen=True)
class ValidationSettings:
    max_change_percent: float = 15.0
    min_price: float = 0.01
    max_price: Optional[float] = None
    # None disables the freshness rule.
    max_age_s: Optional[float] = 300.0
    price_variance_threshold: float = 0.05
    volume_variance_threshold: float = 0.5


def most_trusted(records: Sequence[SourceRecord]) -> SourceRecord:
    """
    Lowest priority number wins; ties go to the most recent timestamp,
    then to the source name so the choice never depends on list order.
    """

    def key(r: SourceRecord) -> Tuple[int, float, str]:
        try:
            ts = r.fetched_at().timestamp()
        except ValueError:
            ts = float("-inf")
        return (r.priority, -ts, r.source)

    return min(records, key=key)


def relative_spread(prices: Sequence[float]) -> float:
    """(max - min) / min over positive prices; 0.0 when fewer than two."""
    positive = [p for p in prices if p > 0]
    if len(positive) < 2:
        return 0.0
    lo, hi = min(positive), max(positive)
    return (hi - lo) / lo


class QuoteValidator:
    """Rule-based Validator implementation."""

    def __init__(
        self,
        settings: Optional[ValidationSettings] = None,
        *,
        now: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or ValidationSettings()
        self._now = now
        self._rules: Dict[str, Rule] = {
            "basic_integrity": self._basic_integrity,
            "price_reasonableness": self._price_reasonableness,
            "data_freshness": self._data_freshness,
        }

    def _basic_integrity(self, r: SourceRecord) -> Tuple[float, List[str]]:
        issues: List[str] = []
        confidence = 1.0
        if not r.symbol or not r.symbol.strip():
            issues.append("Missing or empty symbol")
            confidence -= 0.3
        if r.price is None or r.price <= 0:
            issues.append("Invalid price (must be positive)")
            confidence -= 0.4
        if r.volume is not None and r.volume < 0:
            issues.append("Invalid volume (cannot be negative)")
            confidence -= 0.2
        if r.high is not None and r.low is not None:
            if r.high < r.low:
                issues.append("High price is less than low price")
                confidence -= 0.3
            elif r.price is not None and r.price > 0 and not (r.low <= r.price <= r.high):
                issues.append("Current price is outside high-low range")
                confidence -= 0.2
        return confidence, issues

    def _price_reasonableness(self, r: SourceRecord) -> Tuple[float, List[str]]:
        s = self.settings
        issues: List[str] = []
        confidence = 1.0
        if r.change_percent is not None and abs(r.change_percent) > s.max_change_percent:
            issues.append(f"Extreme price change: {r.change_percent:.2f}%")
            confidence -= 0.3
        if r.price is not None and r.price > 0:
            if r.price < s.min_price:
                issues.append("Price seems unusually low")
                confidence -= 0.2
            if s.max_price is not None and r.price > s.max_price:
                issues.append("Price seems unusually high")
                confidence -= 0.2
        return confidence, issues

    def _data_freshness(self, r: SourceRecord) -> Tuple[float, List[str]]:
        max_age = self.settings.max_age_s
        if max_age is None:
            return 1.0, []
        try:
            age_s = self._now() - r.fetched_at().timestamp()
        except ValueError:
            return 0.5, [f"Unparseable timestamp: {r.timestamp!r}"]
        if age_s <= max_age:
            return 1.0, []
        penalty = min(0.5, age_s / (2 * max_age))
        return 1.0 - penalty, [f"Data is stale ({round(age_s / 60)} minutes old)"]

    def validate(self, record: SourceRecord) -> ValidationOutcome:
        issues: List[str] = []
        total = 0.0
        for name, rule in self._rules.items():
            confidence, rule_issues = rule(record)
            issues.extend(f"[{name}] {i}" for i in rule_issues)
            total += max(0.0, confidence)
        return ValidationOutcome(
            is_valid=not issues,
            confidence=total / len(self._rules),
            issues=issues,
        )

    def cross_validate(self, records: Sequence[SourceRecord]) -> CrossValidationOutcome:
        if not records:
            return CrossValidationOutcome(None, 0.0, ["No data provided for cross-validation"])

        outcomes = [self.validate(r) for r in records]
        discrepancies: List[str] = []
        s = self.settings

        prices = [r.price for r in records if r.price and r.price > 0]
        if len(prices) > 1:
            avg = sum(prices) / len(prices)
            max_dev = max(abs(p - avg) / avg for p in prices)
            if max_dev > s.price_variance_threshold:
                discrepancies.append(f"High price variance between sources: {max_dev * 100:.2f}%")

        volumes = [r.volume for r in records if r.volume and r.volume > 0]
        if len(volumes) > 1:
            avg_v = sum(volumes) / len(volumes)
            max_dev_v = max(abs(v - avg_v) / avg_v for v in volumes)
            if max_dev_v > s.volume_variance_threshold:
                discrepancies.append(f"High volume variance between sources: {max_dev_v * 100:.2f}%")

        valid_share = sum(1 for o in outcomes if o.is_valid) / len(outcomes)
        mean_conf = sum(o.confidence for o in outcomes) / len(outcomes)
        priced = [r for r in records if r.has_price()]
        return CrossValidationOutcome(
            consensus_record=most_trusted(priced) if priced else None,
            confidence=(valid_share + mean_conf) / 2,
            discrepancies=discrepancies,
        )

