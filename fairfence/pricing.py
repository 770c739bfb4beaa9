"""
Canonical fence pricing assembled from the ``pricing`` relation.

Raw rows carry free-text service type labels ("Timber Slat Fence",
"Aluminium Fence", ...). They are mapped onto four canonical categories and
reshaped into ``{category: {height: price, "perMeter": True, ...}}``. When the
store is missing, failing or empty, a static table is served instead.
"""

from __future__ import annotations

import copy
import enum
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from fairfence.db import PricingRecord, PricingStore, PricingStoreError
from fairfence.schemas import PricingData, PricingResponse

logger = logging.getLogger(__name__)

CANONICAL_CATEGORIES = ("timber", "aluminum", "pvc", "rural")
DEFAULT_CATEGORY = "timber"

# Browser 5 minutes, shared caches 30 minutes.
CACHE_CONTROL = "public, max-age=300, s-maxage=1800"

PRICING_TABLES = [{"table_name": "pricing", "table_schema": "public"}]

FALLBACK_PRICING: dict[str, dict[str, Any]] = {
    "timber": {
        "1.2": 150,
        "1.5": 165,
        "1.8": 180,
        "2.1": 210,
        "perMeter": True,
        "description": "Quality timber fencing",
        "materials": "H4 treated pine posts, H3.2 treated palings",
    },
    "aluminum": {
        "1.2": 190,
        "1.5": 205,
        "1.8": 220,
        "2.1": 260,
        "perMeter": True,
        "description": "Modern aluminum fencing",
        "materials": "Powder-coated aluminum, stainless steel fixings",
    },
    "pvc": {
        "1.2": 210,
        "1.5": 230,
        "1.8": 250,
        "2.1": 290,
        "perMeter": True,
        "description": "Low-maintenance PVC/Vinyl fencing",
        "materials": "UV-stabilized PVC, aluminum reinforced posts",
    },
    "rural": {
        "1.2": 100,
        "1.5": 110,
        "1.8": 120,
        "2.1": 140,
        "perMeter": True,
        "description": "Rural and lifestyle fencing",
        "materials": "H5 treated posts, H3.2 rails, 2.5mm HT wire",
    },
}

INFO_FIELDS = ("description", "materials")

CATEGORY_LABELS: dict[str, str] = {
    "Timber Slat Fence": "timber",
    "Timber Fence": "timber",
    "Aluminium Fence": "aluminum",
    "Aluminum Fence": "aluminum",
    "PVC/Vinyl Fence": "pvc",
    "PVC Fence": "pvc",
    "Vinyl Fence": "pvc",
    "Rural Fence": "rural",
    "Rural Fencing": "rural",
}


def fallback_pricing() -> dict[str, dict[str, Any]]:
    """Fresh copy of the static table; the module constant is never handed out."""
    return copy.deepcopy(FALLBACK_PRICING)


@dataclass(frozen=True)
class CategoryRule:
    name: str
    category: str
    matches: Callable[[str], bool]


def _exact(label: str) -> Callable[[str], bool]:
    return lambda value: value == label


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda value: any(needle in value.lower() for needle in needles)


# Evaluated top to bottom; first match wins.
CATEGORY_RULES: tuple[CategoryRule, ...] = tuple(
    [
        CategoryRule(f"exact:{label}", category, _exact(label))
        for label, category in CATEGORY_LABELS.items()
    ]
    + [
        CategoryRule("contains:timber", "timber", _contains("timber")),
        CategoryRule(
            "contains:aluminium", "aluminum", _contains("aluminium", "aluminum")
        ),
        CategoryRule("contains:pvc", "pvc", _contains("pvc", "vinyl")),
        CategoryRule("contains:rural", "rural", _contains("rural")),
    ]
)


def match_rule(label: Optional[str]) -> Optional[CategoryRule]:
    value = label or ""
    for rule in CATEGORY_RULES:
        if rule.matches(value):
            return rule
    return None


def categorize(label: Optional[str]) -> str:
    """Map a free-text service type onto a canonical category."""
    rule = match_rule(label)
    if rule is None:
        logger.warning(
            "Unrecognized service type %r, defaulting to %s", label, DEFAULT_CATEGORY
        )
        return DEFAULT_CATEGORY
    return rule.category


_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def parse_price(value: Any) -> float:
    """
    Leading numeric prefix of ``value`` as a float, or 0 when there is none.

    NaN and infinite values (e.g. ``"1e999"``) also become 0 so the table
    stays valid JSON.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(0))
    if not math.isfinite(number):
        return 0.0
    return number


def format_height(value: Any) -> str:
    """Render a height the way it appears in table keys ("1.2", "2")."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def build_pricing_table(rows: Iterable[PricingRecord]) -> dict[str, dict[str, Any]]:
    table: dict[str, dict[str, Any]] = {}
    for row in rows:
        category = categorize(row.servicetype)
        entry = table.setdefault(category, {"perMeter": True})
        entry[format_height(row.height)] = parse_price(row.totallmincgst)

    for category, fallback in FALLBACK_PRICING.items():
        if category in table:
            for key in INFO_FIELDS:
                table[category][key] = fallback[key]
    return table


class PricingSource(str, enum.Enum):
    DATABASE = "database"
    CONFIG_MISSING = "fallback-config-missing"
    DB_ERROR = "fallback-db-error"
    NO_DATA = "fallback-no-data"
    EXCEPTION = "fallback-exception"

    @property
    def is_fallback(self) -> bool:
        return self is not PricingSource.DATABASE

    @property
    def queried(self) -> bool:
        """The store answered the query (with or without rows)."""
        return self in (PricingSource.DATABASE, PricingSource.NO_DATA)

    @property
    def cacheable(self) -> bool:
        return self.queried


@dataclass
class PricingOutcome:
    source: PricingSource
    pricing: dict[str, dict[str, Any]]
    rows: list[PricingRecord] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def fallback(
        cls,
        source: PricingSource,
        rows: Optional[list[PricingRecord]] = None,
        error: Optional[str] = None,
    ) -> "PricingOutcome":
        return cls(
            source=source, pricing=fallback_pricing(), rows=rows or [], error=error
        )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class PricingNormalizer:
    """Serve the canonical pricing table, degrading to the static table."""

    def __init__(
        self,
        store: Optional[PricingStore],
        timestamp: Callable[[], str] = _utc_timestamp,
    ):
        self.store = store
        self._timestamp = timestamp

    def evaluate(self) -> PricingOutcome:
        if self.store is None:
            logger.error("Missing pricing store configuration")
            return PricingOutcome.fallback(PricingSource.CONFIG_MISSING)

        try:
            rows = self.store.fetch_all()
        except PricingStoreError as exc:
            logger.error("Error fetching pricing from database: %s", exc)
            return PricingOutcome.fallback(PricingSource.DB_ERROR, error=str(exc))
        except Exception as exc:
            logger.exception("Pricing store failed")
            return PricingOutcome.fallback(PricingSource.DB_ERROR, error=str(exc))

        if not rows:
            return PricingOutcome.fallback(PricingSource.NO_DATA)

        try:
            table = build_pricing_table(rows)
        except Exception as exc:
            logger.exception("Unexpected error building pricing table")
            return PricingOutcome.fallback(
                PricingSource.EXCEPTION, rows=rows, error=str(exc)
            )
        return PricingOutcome(source=PricingSource.DATABASE, pricing=table, rows=rows)

    def get_pricing(self) -> PricingResponse:
        outcome = self.evaluate()
        return PricingResponse(
            success=True,
            data=PricingData(
                tables=PRICING_TABLES if outcome.source.queried else [],
                data=(
                    {"pricing": [row.as_dict() for row in outcome.rows]}
                    if outcome.source.queried
                    else {}
                ),
                fallback=outcome.source.is_fallback,
                pricing=outcome.pricing,
                source=outcome.source.value,
                timestamp=self._timestamp(),
                error=outcome.error,
            ),
        )

    def get_pricing_by_type(self, fence_type: str) -> list[PricingRecord]:
        if self.store is None:
            return []
        try:
            return self.store.fetch_by_type(fence_type)
        except PricingStoreError as exc:
            logger.error("Error fetching pricing for %s: %s", fence_type, exc)
            return []
