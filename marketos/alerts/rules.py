"""
Alert rule helpers.

Pure functions over already-loaded rows; the engine feeds them from the
store and turns their findings into alerts.
"""

from dataclasses import dataclass
import hashlib
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import uuid

from marketos.analytics.metrics import FeeRow, SeoRow
from marketos.database.models import FeeType


@dataclass(frozen=True)
class SeoDrop:
    product_id: uuid.UUID
    query: str
    old_position: int
    new_position: int

    @property
    def drop(self) -> int:
        return self.new_position - self.old_position


def tokenize(name: str) -> List[str]:
    return name.lower().split()


def has_keyword_overlap(first: str, second: str, min_length: int = 4) -> bool:
    """True when both names share a whitespace token of at least ``min_length`` chars (case-insensitive)."""
    other = set(tokenize(second))
    return any(len(word) >= min_length and word in other for word in tokenize(first))


def find_campaign_conflicts(names: Iterable[Optional[str]], min_length: int = 4) -> List[Tuple[str, str]]:
    """
    Pairs of distinct campaign names competing for the same keyword.

    Each unordered pair is reported once, in first-seen order.

    Example:
        >>> find_campaign_conflicts(["ASUS VivoBook 15", "Ноутбуки ASUS"])
        [('ASUS VivoBook 15', 'Ноутбуки ASUS')]
    """
    distinct: List[str] = []
    for name in names:
        if name and name not in distinct:
            distinct.append(name)

    conflicts = []
    for i, first in enumerate(distinct):
        for second in distinct[i + 1:]:
            if has_keyword_overlap(first, second, min_length):
                conflicts.append((first, second))
    return conflicts


def detect_seo_drops(snapshots: Sequence[SeoRow], threshold: int = 10) -> List[SeoDrop]:
    """
    (product, query) series whose position worsened by more than ``threshold``.

    ``snapshots`` must be ordered by date. A missing position counts as 0.
    """
    series: Dict[Tuple[uuid.UUID, str], List[int]] = {}
    for snapshot in snapshots:
        series.setdefault((snapshot.product_id, snapshot.query), []).append(snapshot.position or 0)

    drops = []
    for (product_id, query), positions in series.items():
        if len(positions) < 2:
            continue
        old, new = positions[0], positions[-1]
        if new - old > threshold:
            drops.append(SeoDrop(product_id, query, old, new))
    return drops


def storage_cost_by_product(fees: Iterable[FeeRow]) -> Dict[uuid.UUID, float]:
    totals: Dict[uuid.UUID, float] = {}
    for fee in fees:
        if fee.type == FeeType.STORAGE:
            totals[fee.product_id] = totals.get(fee.product_id, 0.0) + fee.amount
    return totals


def build_fingerprint(source: str, alert_type: str, *parts: object) -> str:
    """Stable identity of an alert condition, used to suppress repeats."""
    digest = hashlib.sha1("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()[:20]
    return f"{source}:{alert_type}:{digest}"
