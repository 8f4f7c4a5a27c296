"""Sentiment classification models.

This module defines the shape of a classification outcome and the derived
aggregate statistics shown on the dashboard.

Model Roles:
    SentimentPrediction:
        Structured output requested from the language model. Its JSON schema
        is what constrains the model: an enum label, a bounded confidence and
        an ordered list of key terms. Anything else fails validation.

    ClassificationRecord:
        One finished analysis as kept in the session history. Built only by
        the orchestrator after a successful call, frozen afterwards.

    AggregateStats:
        Recomputable projection over a sequence of records. Never stored.
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

RECORD_ID_PREFIX = "AN-"


class SentimentLabel(str, Enum):
    """Closed set of sentiment classes.

    There is intentionally no alias table: a label outside these three
    values is a contract violation by the model and must be rejected.
    """

    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"


class SentimentPrediction(BaseModel):
    """Structured classifier output for a single text.

    Attributes:
        label: Sentiment class
        confidence: Model's probability for the chosen label (0.0 to 1.0)
        key_terms: Words that most influenced the decision, most relevant first
    """

    label: SentimentLabel = Field(description="The sentiment classification")
    confidence: float = Field(
        ge=0.0,
        le=1.0,
        allow_inf_nan=False,
        description="Confidence probability between 0 and 1",
    )
    key_terms: list[str] = Field(description="Words that influenced the sentiment, most relevant first")

    def __str__(self) -> str:
        return f"Prediction({self.label.value}, {self.confidence:.2f})"


def new_record_id() -> str:
    """Generate an opaque record id like 'AN-3F9A1C07'."""
    return RECORD_ID_PREFIX + uuid.uuid4().hex[:8].upper()


class ClassificationRecord(BaseModel):
    """A completed sentiment analysis.

    Records are immutable. The history store relies on ``id`` being unique
    within a session; ``label`` and ``confidence`` are validated with the
    same constraints as the classifier output, so a record can never hold
    a value the model was not allowed to return.

    Example:
        >>> prediction = SentimentPrediction(
        ...     label=SentimentLabel.POSITIVE, confidence=0.97,
        ...     key_terms=["excellent", "service", "fast"],
        ... )
        >>> record = ClassificationRecord.from_prediction("Excellent service, very fast.", prediction)
        >>> record.id.startswith("AN-")
        True
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Opaque unique identifier")
    text: str = Field(description="Original feedback text")
    label: SentimentLabel
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)
    created_at: datetime = Field(description="Client-side time the record was finalized")
    key_terms: tuple[str, ...] | None = Field(default=None, description="Influential terms in relevance order")

    @classmethod
    def from_prediction(
        cls,
        text: str,
        prediction: SentimentPrediction,
        *,
        record_id: str | None = None,
        created_at: datetime | None = None,
    ) -> "ClassificationRecord":
        """Finalize a classifier prediction into a history record.

        Args:
            text: Feedback text that was classified
            prediction: Validated classifier output
            record_id: Explicit id (a fresh one is generated if omitted)
            created_at: Explicit timestamp (defaults to now, UTC)

        Returns:
            New ClassificationRecord
        """
        return cls(
            id=record_id or new_record_id(),
            text=text,
            label=prediction.label,
            confidence=prediction.confidence,
            created_at=created_at or datetime.now(timezone.utc),
            key_terms=tuple(prediction.key_terms) if prediction.key_terms else None,
        )

    def __str__(self) -> str:
        return f"Record({self.id}, {self.label.value}, {self.confidence:.2f}, '{self.text[:40]}')"


@dataclass(frozen=True)
class AggregateStats:
    """Counts and mean confidence over a set of records.

    Attributes:
        total: Number of records
        positive_count: Records labelled Positive
        neutral_count: Records labelled Neutral
        negative_count: Records labelled Negative
        average_confidence: Mean confidence, 0.0 for an empty set
    """

    total: int = 0
    positive_count: int = 0
    neutral_count: int = 0
    negative_count: int = 0
    average_confidence: float = 0.0

    @classmethod
    def from_records(cls, records: Iterable[ClassificationRecord]) -> "AggregateStats":
        counts = {label: 0 for label in SentimentLabel}
        confidence_sum = 0.0
        for record in records:
            counts[record.label] += 1
            confidence_sum += record.confidence

        total = sum(counts.values())
        if total == 0:
            return cls()

        return cls(
            total=total,
            positive_count=counts[SentimentLabel.POSITIVE],
            neutral_count=counts[SentimentLabel.NEUTRAL],
            negative_count=counts[SentimentLabel.NEGATIVE],
            average_confidence=confidence_sum / total,
        )

    def count(self, label: SentimentLabel) -> int:
        """Number of records with the given label."""
        return {
            SentimentLabel.POSITIVE: self.positive_count,
            SentimentLabel.NEUTRAL: self.neutral_count,
            SentimentLabel.NEGATIVE: self.negative_count,
        }[label]

    def share(self, label: SentimentLabel) -> float:
        """Fraction of records with the given label (0.0 when empty)."""
        if self.total == 0:
            return 0.0
        return self.count(label) / self.total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["average_confidence"] = round(d["average_confidence"], 4)
        return d
