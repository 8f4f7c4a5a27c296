"""Shared fixtures for the Sentix test suite."""

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from config import Config
from history import HistoryStore
from models.sentiment import ClassificationRecord, SentimentLabel, SentimentPrediction

SESSION_START = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClassifier:
    """Classifier double that records every call.

    Returns ``prediction`` or raises ``error``. When ``gate`` is set, each
    call waits for it before answering.
    """

    def __init__(
        self,
        prediction: SentimentPrediction | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.prediction = prediction
        self.error = error
        self.gate = gate
        self.calls: list[str] = []

    async def classify(self, text: str) -> SentimentPrediction:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.prediction


@pytest.fixture
def config(tmp_path) -> Config:
    """Configuration with a dummy key and a temp log dir."""
    return Config(gemini_api_key="test-key", log_dir=tmp_path / "log", request_timeout=5.0)


@pytest.fixture
def positive_prediction() -> SentimentPrediction:
    return SentimentPrediction(
        label=SentimentLabel.POSITIVE,
        confidence=0.97,
        key_terms=["excellent", "service", "fast"],
    )


@pytest.fixture
def store() -> HistoryStore:
    """Seeded history store with a fixed session start."""
    return HistoryStore.with_seed_data(now=SESSION_START)


@pytest.fixture
def make_record():
    """Factory for records with predictable ids."""
    counter = iter(range(1, 10_000))

    def _make(
        label: SentimentLabel = SentimentLabel.POSITIVE,
        confidence: float = 0.9,
        text: str = "Sample feedback text",
    ) -> ClassificationRecord:
        return ClassificationRecord(
            id=f"AN-{next(counter):08d}",
            text=text,
            label=label,
            confidence=confidence,
            created_at=SESSION_START,
        )

    return _make


@pytest.fixture
def restore_logging():
    """Put root logger handlers back after tests that call setup_logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
