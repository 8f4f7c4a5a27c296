"""PydanticAI agents for the Sentix sentiment pipeline.

SentimentClassifier:
    One structured Gemini call per feedback text, returning a validated
    SentimentPrediction or raising a ClassificationError.

Example:
    >>> from agents import SentimentClassifier
    >>> classifier = SentimentClassifier(config)
"""

from agents.sentiment import SentimentClassifier

__all__ = [
    "SentimentClassifier",
]
