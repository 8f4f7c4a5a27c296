"""Pydantic models for the Sentix sentiment pipeline.

SentimentLabel:
    Closed enum of sentiment classes (Positive, Neutral, Negative).

SentimentPrediction:
    Structured output of the classifier (label, confidence, key_terms).

ClassificationRecord:
    Immutable history entry built from a prediction (id, text, timestamp).

AggregateStats:
    Counts and average confidence derived from a set of records.

Example:
    >>> from models import ClassificationRecord, SentimentPrediction, SentimentLabel
    >>> prediction = SentimentPrediction(label=SentimentLabel.NEUTRAL, confidence=0.7, key_terms=[])
    >>> record = ClassificationRecord.from_prediction("It is fine for the price.", prediction)
"""

from models.sentiment import (
    AggregateStats,
    ClassificationRecord,
    SentimentLabel,
    SentimentPrediction,
    new_record_id,
)

__all__ = [
    "AggregateStats",
    "ClassificationRecord",
    "SentimentLabel",
    "SentimentPrediction",
    "new_record_id",
]
