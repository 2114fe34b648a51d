from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Mapping, Sequence

from app.contexts.rfq.domain.models import Quotation, parse_timestamp
from app.errors import ValidationError


@dataclass(frozen=True)
class RankingWeights:
    price_weight: float = 40
    delivery_weight: float = 30
    quality_weight: float = 20
    baseline_weight: float = 10

    def __post_init__(self) -> None:
        values = (self.price_weight, self.delivery_weight, self.quality_weight, self.baseline_weight)
        if any(float(value) < 0 for value in values):
            raise ValidationError(code="ranking_weights_invalid", details="ranking weights must be non-negative")
        total = sum(Decimal(str(value)) for value in values)
        if total != Decimal("100"):
            raise ValidationError(
                code="ranking_weights_invalid",
                details=f"ranking weights must sum to 100, got {total}",
            )

    @classmethod
    def parse(cls, raw: str | Sequence[float] | None) -> "RankingWeights":
        """Build weights from ``"price,delivery,quality,baseline"`` or a 4-item sequence."""
        if raw is None or raw == "":
            return cls()
        if isinstance(raw, str):
            parts = [part.strip() for part in raw.split(",") if part.strip()]
        else:
            parts = list(raw)
        if len(parts) != 4:
            raise ValidationError(code="ranking_weights_invalid", details="expected four ranking weights")
        try:
            price, delivery, quality, baseline = (float(part) for part in parts)
        except (TypeError, ValueError) as exc:
            raise ValidationError(code="ranking_weights_invalid", details=str(exc)) from exc
        return cls(price, delivery, quality, baseline)


DEFAULT_WEIGHTS = RankingWeights()


def round_score(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _quality_for(supplier_id: str, quality_scores: Mapping[str, float]) -> float:
    raw = quality_scores.get(supplier_id, 0)
    try:
        score = float(raw or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError(code="quality_score_invalid", details=f"{supplier_id}: {raw!r}") from exc
    if score < 0 or score > 100:
        raise ValidationError(
            code="quality_score_invalid",
            details=f"quality score for {supplier_id} must be within 0..100, got {score}",
        )
    return score


def _tie_break_key(quotation: Quotation) -> tuple[bool, datetime]:
    submitted = parse_timestamp(quotation.submitted_at)
    if submitted is None:
        return (True, datetime.min)
    return (False, submitted.replace(tzinfo=None) - submitted.utcoffset())


def rank_quotations(
    quotations: Iterable[Quotation],
    quality_scores: Mapping[str, float] | None = None,
    weights: RankingWeights = DEFAULT_WEIGHTS,
) -> List[Quotation]:
    """Score quotations against each other and return them best first.

    Scores are recomputed on every call from the given set only, so adding or
    cancelling a quotation changes everyone's score. Ties go to the earliest
    ``submitted_at``; quotations without a timestamp keep their input order.
    """
    items = list(quotations)
    if not items:
        return []
    scores = quality_scores or {}

    min_price = min(float(item.total_amount) for item in items)
    min_days = min(int(item.delivery_days) for item in items)

    for item in items:
        price_score = (min_price / float(item.total_amount)) * weights.price_weight if min_price > 0 else 0.0
        delivery_score = (min_days / int(item.delivery_days)) * weights.delivery_weight if min_days > 0 else 0.0
        quality_score = (_quality_for(item.supplier_id, scores) / 100) * weights.quality_weight
        item.ranking_score = round_score(price_score + delivery_score + quality_score + weights.baseline_weight)

    # sorted() is stable, so equal keys preserve the input order.
    return sorted(items, key=lambda item: (-float(item.ranking_score or 0.0), _tie_break_key(item)))
