"""Analysis workflow: submitted feedback -> stored classification record.

Workflow (one submission):
    1. VALIDATE: trim the text and enforce the minimum length locally
    2. CLASSIFY: await the classifier exactly once (the only suspension point)
    3. RECORD: build a ClassificationRecord (fresh id, current time)
    4. STORE: append it to the front of the session history

Validation strictly precedes the call, and the call strictly precedes the
append. A failed call never produces a record. Identical texts submitted
twice produce two records.

The orchestrator holds the history's only write handle. UI front ends talk
to it through AnalysisDispatcher, which turns SubmitAnalysis commands into
serialized orchestrator calls on the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from errors import (
    ClassificationError,
    DuplicateRecordError,
    InputValidationError,
    SchemaViolationError,
)
from history import HistoryWriter
from models.sentiment import ClassificationRecord, SentimentPrediction

logger = logging.getLogger(__name__)

DEFAULT_MIN_TEXT_LENGTH = 5
MAX_ID_ATTEMPTS = 5

MESSAGES = {
    "en": {
        "min_length": "Insufficient content. A minimum of {min_length} characters is required.",
        "service_interrupted": "Inference service interrupted. Check your connection.",
        "cancelled": "Analysis cancelled.",
    },
    "es": {
        "min_length": "Contenido insuficiente. Se requiere un mínimo de {min_length} caracteres.",
        "service_interrupted": "Interrupción en el servicio de inferencia. Verifique su conexión.",
        "cancelled": "Análisis cancelado.",
    },
}


class Classifier(Protocol):
    """Anything that can turn text into a SentimentPrediction."""

    async def classify(self, text: str) -> SentimentPrediction: ...


class AnalysisStatus(str, Enum):
    """Final state of one submission."""

    COMPLETED = "completed"
    INVALID_INPUT = "invalid_input"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AnalysisOutcome:
    """Result of one submission as seen by the UI.

    Attributes:
        status: Final state of the submission
        record: The stored record (COMPLETED only)
        message: User-facing message (empty on success)
        error: Underlying error, kept for logging and tests, never shown raw
    """

    status: AnalysisStatus
    record: ClassificationRecord | None = None
    message: str = ""
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status == AnalysisStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        d: dict[str, Any] = {"status": self.status.value, "message": self.message}
        if self.record is not None:
            d["record"] = self.record.model_dump(mode="json")
        return d


class AnalysisOrchestrator:
    """Runs the submit -> classify -> store workflow.

    The ``pending`` flag is the "in progress" state the UI observes (it
    disables the submit action while True). No lock is taken: if two
    submissions overlap anyway, each appends independently and whichever
    completes last ends up first in the history.

    Example:
        >>> store = HistoryStore.with_seed_data()
        >>> orchestrator = AnalysisOrchestrator(classifier, store.writer())
        >>> outcome = await orchestrator.submit("Excellent service, very fast.")
        >>> outcome.record is store.latest(1)[0]
        True
    """

    def __init__(
        self,
        classifier: Classifier,
        writer: HistoryWriter,
        min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
        language: str = "en",
    ):
        """Initialize the orchestrator.

        Args:
            classifier: Classification client
            writer: The history's write handle
            min_text_length: Minimum trimmed length accepted
            language: Language of user-facing messages ('en' or 'es')
        """
        self._classifier = classifier
        self._writer = writer
        self.min_text_length = min_text_length
        self._messages = MESSAGES.get(language, MESSAGES["en"])
        self._in_flight: set[asyncio.Future] = set()
        self.last_record: ClassificationRecord | None = None

    @property
    def pending(self) -> bool:
        """True while a classification call is in flight."""
        return bool(self._in_flight)

    def validate(self, text: str) -> str:
        """Apply the local validation gate.

        Args:
            text: Raw user input

        Returns:
            The trimmed text

        Raises:
            InputValidationError: Trimmed text shorter than min_text_length
        """
        cleaned = (text or "").strip()
        if len(cleaned) < self.min_text_length:
            raise InputValidationError(
                self._messages["min_length"].format(min_length=self.min_text_length),
                rule="min_length",
            )
        return cleaned

    async def submit(self, text: str) -> AnalysisOutcome:
        """Analyze one feedback text and store the result.

        Args:
            text: Raw user input

        Returns:
            AnalysisOutcome describing what happened

        Raises:
            ConfigurationError: The classifier is not configured (fatal)
            DuplicateRecordError: No free record id after MAX_ID_ATTEMPTS draws
        """
        try:
            cleaned = self.validate(text)
        except InputValidationError as e:
            logger.info("Submission rejected | rule=%s chars=%d", e.rule, len((text or "").strip()))
            return AnalysisOutcome(AnalysisStatus.INVALID_INPUT, message=str(e), error=e)

        call = asyncio.ensure_future(self._classifier.classify(cleaned))
        self._in_flight.add(call)
        logger.info("Analysis started | chars=%d", len(cleaned))
        try:
            prediction = await call
        except SchemaViolationError as e:
            logger.error("Analysis failed: classifier broke the response contract | error=%s", e)
            return self._failed(e)
        except ClassificationError as e:
            logger.warning("Analysis failed: %s | error=%s", type(e).__name__, e)
            return self._failed(e)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.info("Analysis cancelled before completion | chars=%d", len(cleaned))
            return AnalysisOutcome(AnalysisStatus.CANCELLED, message=self._messages["cancelled"])
        finally:
            self._in_flight.discard(call)

        record = self._store_prediction(cleaned, prediction)
        self.last_record = record
        logger.info("Analysis complete | %s", record)
        return AnalysisOutcome(AnalysisStatus.COMPLETED, record=record)

    def cancel(self) -> int:
        """Cancel in-flight classification calls.

        Returns:
            Number of calls that were cancelled
        """
        cancelled = 0
        for call in list(self._in_flight):
            if call.cancel():
                cancelled += 1
        return cancelled

    def _store_prediction(self, text: str, prediction: SentimentPrediction) -> ClassificationRecord:
        """Append a new record, drawing a fresh id if the generated one is taken.

        Raises:
            DuplicateRecordError: If every attempt collided
        """
        record = ClassificationRecord.from_prediction(text, prediction)
        for attempt in range(1, MAX_ID_ATTEMPTS):
            try:
                self._writer.append(record)
                return record
            except DuplicateRecordError:
                logger.warning("Record id collision, regenerating | id=%s attempt=%d", record.id, attempt)
                record = ClassificationRecord.from_prediction(text, prediction)
        self._writer.append(record)
        return record

    def _failed(self, error: Exception) -> AnalysisOutcome:
        return AnalysisOutcome(
            AnalysisStatus.FAILED,
            message=self._messages["service_interrupted"],
            error=error,
        )


# === Command dispatch ===


@dataclass(frozen=True)
class SubmitAnalysis:
    """Command: analyze this text and store the result."""

    text: str


class AnalysisDispatcher:
    """Single-consumer command queue in front of the orchestrator.

    Commands are handled one at a time in arrival order on the event loop,
    which keeps the orchestrator the history's only writer and gives the
    UI at most one analysis in flight.

    Example:
        >>> async with AnalysisDispatcher(orchestrator) as dispatcher:
        ...     outcome = await dispatcher.dispatch(SubmitAnalysis("Great support team!"))
    """

    def __init__(self, orchestrator: AnalysisOrchestrator):
        self.orchestrator = orchestrator
        self._queue: asyncio.Queue[tuple[Any, asyncio.Future]] = asyncio.Queue()
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker task if it is not running."""
        if not self.running:
            self._worker = asyncio.create_task(self.run(), name="analysis-dispatcher")

    async def dispatch(self, command: Any) -> AnalysisOutcome:
        """Queue a command and wait for its outcome.

        Raises:
            TypeError: Unknown command type
            ConfigurationError: The classifier is not configured
        """
        self.start()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((command, future))
        return await future

    async def run(self) -> None:
        """Process queued commands until cancelled."""
        while True:
            command, future = await self._queue.get()
            try:
                outcome = await self._handle(command)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(outcome)
            finally:
                self._queue.task_done()

    async def _handle(self, command: Any) -> AnalysisOutcome:
        if isinstance(command, SubmitAnalysis):
            return await self.orchestrator.submit(command.text)
        raise TypeError(f"Unknown command: {type(command).__name__}")

    async def stop(self) -> None:
        """Stop the worker; commands still queued are cancelled."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            future.cancel()
            self._queue.task_done()

    async def __aenter__(self) -> "AnalysisDispatcher":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
