"""Tests for the analysis orchestrator and command dispatcher."""

import asyncio
from datetime import datetime, timezone

import pytest
from pydantic_ai.models.test import TestModel as PydanticTestModel

from agents.sentiment import SentimentClassifier
from config import Config
from errors import (
    ClassifierTimeoutError,
    ClassifierTransportError,
    ConfigurationError,
    DuplicateRecordError,
    InputValidationError,
    SchemaViolationError,
)
from history import HistoryStore
from models.sentiment import SentimentLabel, SentimentPrediction
from orchestrator import (
    AnalysisDispatcher,
    AnalysisOrchestrator,
    AnalysisStatus,
    SubmitAnalysis,
)

from conftest import FakeClassifier

GENERIC_FAILURE = "Inference service interrupted. Check your connection."


async def _wait_until(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class TestValidationGate:
    """Inputs shorter than the minimum never reach the classifier."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "ok", "    ", "  abc ", "abcd", "\n\tab \n"])
    async def test_short_input_is_rejected_locally(self, store, positive_prediction, text):
        classifier = FakeClassifier(prediction=positive_prediction)
        orchestrator = AnalysisOrchestrator(classifier, store.writer())
        before = store.records()

        outcome = await orchestrator.submit(text)

        assert outcome.status is AnalysisStatus.INVALID_INPUT
        assert outcome.message == "Insufficient content. A minimum of 5 characters is required."
        assert isinstance(outcome.error, InputValidationError)
        assert outcome.error.rule == "min_length"
        assert classifier.calls == []
        assert store.records() == before

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive_after_trimming(self, store, positive_prediction):
        classifier = FakeClassifier(prediction=positive_prediction)
        orchestrator = AnalysisOrchestrator(classifier, store.writer())

        outcome = await orchestrator.submit("   great  ")

        assert outcome.ok
        assert classifier.calls == ["great"]

    @pytest.mark.asyncio
    async def test_spanish_message(self, store, positive_prediction):
        orchestrator = AnalysisOrchestrator(
            FakeClassifier(prediction=positive_prediction), store.writer(), language="es"
        )

        outcome = await orchestrator.submit("ok")

        assert outcome.message == "Contenido insuficiente. Se requiere un mínimo de 5 caracteres."

    def test_validate_returns_trimmed_text(self, store):
        orchestrator = AnalysisOrchestrator(FakeClassifier(), store.writer(), min_text_length=3)
        assert orchestrator.validate("  hello  ") == "hello"
        with pytest.raises(InputValidationError):
            orchestrator.validate(" hi ")


class TestSubmit:
    """Tests for successful and failed submissions."""

    @pytest.mark.asyncio
    async def test_successful_submission_is_stored_first(self, store, positive_prediction):
        classifier = FakeClassifier(prediction=positive_prediction)
        orchestrator = AnalysisOrchestrator(classifier, store.writer())
        before = datetime.now(timezone.utc)

        outcome = await orchestrator.submit("Excellent service, very fast.")

        assert outcome.status is AnalysisStatus.COMPLETED
        assert outcome.message == ""
        record = store.records()[0]
        assert outcome.record is record
        assert orchestrator.last_record is record
        assert record.text == "Excellent service, very fast."
        assert record.label is SentimentLabel.POSITIVE
        assert record.confidence == 0.97
        assert record.key_terms == ("excellent", "service", "fast")
        assert record.id.startswith("AN-")
        assert record.id not in {"tx_12345", "tx_67890", "tx_54321"}
        assert record.created_at >= before
        assert len(store) == 4
        assert classifier.calls == ["Excellent service, very fast."]

    @pytest.mark.asyncio
    async def test_identical_submissions_create_distinct_records(self, store, positive_prediction):
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction), store.writer())

        first = await orchestrator.submit("Great product, thanks")
        second = await orchestrator.submit("Great product, thanks")

        assert first.record.id != second.record.id
        assert store.latest(2) == (second.record, first.record)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            ClassifierTransportError("HTTP 503"),
            ClassifierTimeoutError("No response within 30s"),
            SchemaViolationError("label 'Mixed' not allowed"),
        ],
    )
    async def test_classifier_failure_leaves_store_unchanged(self, store, error):
        orchestrator = AnalysisOrchestrator(FakeClassifier(error=error), store.writer())
        before = store.records()

        outcome = await orchestrator.submit("The delivery was fine I guess")

        assert outcome.status is AnalysisStatus.FAILED
        assert outcome.message == GENERIC_FAILURE
        assert outcome.error is error
        assert outcome.record is None
        assert store.records() == before
        assert orchestrator.pending is False
        assert orchestrator.last_record is None

    @pytest.mark.asyncio
    async def test_raw_error_is_not_exposed_in_message(self, store):
        error = ClassifierTransportError("secret upstream detail")
        orchestrator = AnalysisOrchestrator(FakeClassifier(error=error), store.writer())

        outcome = await orchestrator.submit("Where is my order?")

        assert "secret upstream detail" not in outcome.message
        assert "secret upstream detail" not in str(outcome.to_dict())

    @pytest.mark.asyncio
    async def test_configuration_error_propagates(self, store):
        orchestrator = AnalysisOrchestrator(FakeClassifier(error=ConfigurationError("no key")), store.writer())

        with pytest.raises(ConfigurationError):
            await orchestrator.submit("Where is my order?")

        assert len(store) == 3
        assert orchestrator.pending is False

    @pytest.mark.asyncio
    async def test_unsupported_label_from_model_fails_workflow(self, store):
        classifier = SentimentClassifier(
            Config(gemini_api_key="test-key"),
            model=PydanticTestModel(custom_output_args={"label": "Mixed", "confidence": 0.5, "key_terms": []}),
        )
        orchestrator = AnalysisOrchestrator(classifier, store.writer())
        before = store.records()

        outcome = await orchestrator.submit("Some good parts, some bad parts")

        assert outcome.status is AnalysisStatus.FAILED
        assert isinstance(outcome.error, SchemaViolationError)
        assert store.records() == before

    @pytest.mark.asyncio
    async def test_missing_credential_fails_without_network(self, store):
        model = PydanticTestModel(custom_output_args={"label": "Positive", "confidence": 0.9, "key_terms": []})
        classifier = SentimentClassifier(Config(gemini_api_key=""), model=model)
        orchestrator = AnalysisOrchestrator(classifier, store.writer())

        with pytest.raises(ConfigurationError):
            await orchestrator.submit("Excellent service, very fast.")

        assert classifier._agent is None
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_unsupported_model_is_configuration_error(self, store):
        classifier = SentimentClassifier(Config(gemini_api_key="test-key", classifier_model="anthropic:claude"))
        orchestrator = AnalysisOrchestrator(classifier, store.writer())

        with pytest.raises(ConfigurationError):
            await orchestrator.submit("Excellent service, very fast.")

        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_record_id_collision_draws_new_id(self, store, positive_prediction, monkeypatch):
        ids = iter(["tx_12345", "AN-00000001"])
        monkeypatch.setattr("models.sentiment.new_record_id", lambda: next(ids))
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction), store.writer())

        outcome = await orchestrator.submit("Excellent service, very fast.")

        assert outcome.status is AnalysisStatus.COMPLETED
        assert outcome.record.id == "AN-00000001"
        assert store.latest(1)[0] is outcome.record
        assert len(store) == 4

    @pytest.mark.asyncio
    async def test_persistent_id_collision_raises(self, store, positive_prediction, monkeypatch):
        monkeypatch.setattr("models.sentiment.new_record_id", lambda: "tx_12345")
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction), store.writer())

        with pytest.raises(DuplicateRecordError):
            await orchestrator.submit("Excellent service, very fast.")

        assert len(store) == 3
        assert orchestrator.last_record is None


class TestPendingAndConcurrency:
    """Tests for the in-progress state, cancellation and overlapping submissions."""

    @pytest.mark.asyncio
    async def test_pending_while_call_in_flight(self, store, positive_prediction):
        gate = asyncio.Event()
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction, gate=gate), store.writer())

        task = asyncio.create_task(orchestrator.submit("Excellent service, very fast."))
        await _wait_until(lambda: orchestrator.pending)
        assert len(store) == 3

        gate.set()
        outcome = await task

        assert outcome.ok
        assert orchestrator.pending is False

    @pytest.mark.asyncio
    async def test_cancel_in_flight_call(self, store, positive_prediction):
        gate = asyncio.Event()
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction, gate=gate), store.writer())

        task = asyncio.create_task(orchestrator.submit("Excellent service, very fast."))
        await _wait_until(lambda: orchestrator.pending)

        assert orchestrator.cancel() == 1
        outcome = await task

        assert outcome.status is AnalysisStatus.CANCELLED
        assert outcome.message == "Analysis cancelled."
        assert len(store) == 3
        assert orchestrator.pending is False

    @pytest.mark.asyncio
    async def test_cancelling_caller_propagates(self, store, positive_prediction):
        gate = asyncio.Event()
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction, gate=gate), store.writer())

        task = asyncio.create_task(orchestrator.submit("Excellent service, very fast."))
        await _wait_until(lambda: orchestrator.pending)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_overlapping_submissions_append_in_completion_order(self, store):
        class GatedClassifier:
            def __init__(self):
                self.gates: dict[str, asyncio.Event] = {}

            async def classify(self, text: str) -> SentimentPrediction:
                gate = self.gates.setdefault(text, asyncio.Event())
                await gate.wait()
                return SentimentPrediction(label=SentimentLabel.NEUTRAL, confidence=0.5, key_terms=[text])

        classifier = GatedClassifier()
        orchestrator = AnalysisOrchestrator(classifier, store.writer())

        first = asyncio.create_task(orchestrator.submit("first submission"))
        second = asyncio.create_task(orchestrator.submit("second submission"))
        await _wait_until(lambda: len(classifier.gates) == 2)

        classifier.gates["second submission"].set()
        await second
        classifier.gates["first submission"].set()
        await first

        assert [r.text for r in store.latest(2)] == ["first submission", "second submission"]
        assert len(store) == 5


class TestDispatcher:
    """Tests for AnalysisDispatcher."""

    @pytest.mark.asyncio
    async def test_dispatch_submit_command(self, store, positive_prediction):
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction), store.writer())

        async with AnalysisDispatcher(orchestrator) as dispatcher:
            outcome = await dispatcher.dispatch(SubmitAnalysis("Excellent service, very fast."))

        assert outcome.ok
        assert store.records()[0] is outcome.record
        assert not dispatcher.running

    @pytest.mark.asyncio
    async def test_commands_are_processed_one_at_a_time(self, store, positive_prediction):
        classifier = FakeClassifier(prediction=positive_prediction)
        orchestrator = AnalysisOrchestrator(classifier, store.writer())
        max_in_flight = 0
        original = classifier.classify

        async def tracking_classify(text: str) -> SentimentPrediction:
            nonlocal max_in_flight
            max_in_flight = max(max_in_flight, len(orchestrator._in_flight))
            await asyncio.sleep(0)
            return await original(text)

        classifier.classify = tracking_classify

        async with AnalysisDispatcher(orchestrator) as dispatcher:
            outcomes = await asyncio.gather(
                dispatcher.dispatch(SubmitAnalysis("feedback one")),
                dispatcher.dispatch(SubmitAnalysis("feedback two")),
                dispatcher.dispatch(SubmitAnalysis("feedback three")),
            )

        assert all(o.ok for o in outcomes)
        assert max_in_flight == 1
        assert classifier.calls == ["feedback one", "feedback two", "feedback three"]
        assert [r.text for r in store.latest(3)] == ["feedback three", "feedback two", "feedback one"]

    @pytest.mark.asyncio
    async def test_validation_outcome_through_dispatcher(self, store, positive_prediction):
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction), store.writer())

        async with AnalysisDispatcher(orchestrator) as dispatcher:
            outcome = await dispatcher.dispatch(SubmitAnalysis("ok"))

        assert outcome.status is AnalysisStatus.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_unknown_command(self, store):
        orchestrator = AnalysisOrchestrator(FakeClassifier(), store.writer())

        async with AnalysisDispatcher(orchestrator) as dispatcher:
            with pytest.raises(TypeError):
                await dispatcher.dispatch("not a command")

    @pytest.mark.asyncio
    async def test_configuration_error_reaches_caller(self, store):
        orchestrator = AnalysisOrchestrator(FakeClassifier(error=ConfigurationError("no key")), store.writer())

        async with AnalysisDispatcher(orchestrator) as dispatcher:
            with pytest.raises(ConfigurationError):
                await dispatcher.dispatch(SubmitAnalysis("Where is my order?"))

    @pytest.mark.asyncio
    async def test_record_added_reaches_subscribers(self, positive_prediction):
        store = HistoryStore()
        seen = []
        store.subscribe(lambda event: seen.append(event.record.id))
        orchestrator = AnalysisOrchestrator(FakeClassifier(prediction=positive_prediction), store.writer())

        async with AnalysisDispatcher(orchestrator) as dispatcher:
            outcome = await dispatcher.dispatch(SubmitAnalysis("Excellent service, very fast."))

        assert seen == [outcome.record.id]
