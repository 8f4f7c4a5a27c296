"""Exception hierarchy for the Sentix analysis pipeline.

All pipeline exceptions inherit from SentixError so the CLI can handle them
in one place. The classification failures share a ClassificationError base:
the orchestrator collapses every one of them into a single user-facing
message, while the subclasses keep transport problems and contract breaches
apart in the logs.

Hierarchy:
    SentixError
    ├── ConfigurationError          missing credential / bad settings (fatal)
    ├── InputValidationError        feedback text rejected before any call
    ├── DuplicateRecordError        history already holds the record id
    └── ClassificationError         the external model call failed
        ├── ClassifierTransportError    network, HTTP status, provider failure
        │   └── ClassifierTimeoutError  no answer within the timeout
        └── SchemaViolationError        response does not match the schema
"""


class SentixError(Exception):
    """Base class for all Sentix errors."""


class ConfigurationError(SentixError):
    """Raised when the process is not configured for analysis.

    This is fatal for every analysis attempt and is always raised before
    any network I/O happens.
    """


class InputValidationError(SentixError):
    """Raised when feedback text fails the local validation gate.

    Attributes:
        rule: Short identifier of the violated rule (e.g. 'min_length')
    """

    def __init__(self, message: str, rule: str = "invalid"):
        super().__init__(message)
        self.rule = rule


class DuplicateRecordError(SentixError):
    """Raised when a record id is already present in the history."""

    def __init__(self, record_id: str):
        super().__init__(f"Record id already present in history: {record_id}")
        self.record_id = record_id


class ClassificationError(SentixError):
    """Base class for failures of the external classification call."""


class ClassifierTransportError(ClassificationError):
    """Network failure, non-2xx response or provider error."""


class ClassifierTimeoutError(ClassifierTransportError):
    """The classification call did not complete within the timeout."""


class SchemaViolationError(ClassificationError):
    """The model answered, but the payload broke the response contract.

    Examples: missing fields, a label outside Positive/Neutral/Negative,
    a confidence outside [0, 1].
    """
