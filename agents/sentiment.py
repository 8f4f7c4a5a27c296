"""Sentiment classifier backed by a hosted language model.

This module implements the SentimentClassifier, which sends one feedback
text to the model and returns a validated SentimentPrediction.

Design:
    - Structured output: the agent's output type is SentimentPrediction, so
      the model is constrained to the schema (enum label, bounded confidence,
      list of terms) instead of answering in prose
    - One exchange per call: no retries and no output re-prompting here;
      retry policy, if any, belongs to the caller
    - Explicit failures: every error is raised as a ClassificationError
      subclass, never replaced by a default prediction

Error Mapping:
    missing GEMINI_API_KEY          -> ConfigurationError (before any I/O)
    timeout                         -> ClassifierTimeoutError
    HTTP status / network failure   -> ClassifierTransportError
    schema validation failure       -> SchemaViolationError
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx
from openai import AsyncOpenAI
from pydantic import ValidationError
from pydantic_ai import Agent, PromptedOutput, RunContext
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from config import Config
from errors import (
    ClassificationError,
    ClassifierTimeoutError,
    ClassifierTransportError,
    ConfigurationError,
    SchemaViolationError,
)
from models.sentiment import SentimentPrediction
from observability.tracing import trace_operation

logger = logging.getLogger(__name__)


# === System Prompts ===
# The label values stay in English in both languages: they are schema values,
# not display text.

SENTIMENT_PROMPTS = {
    "en": """You are a customer feedback analyst. Your task is to classify the sentiment of a single piece of customer feedback.

## Labels
- Positive: the customer is satisfied, praises the product or service, or recommends it
- Neutral: mixed, factual or lukewarm feedback without a clear overall leaning
- Negative: the customer is dissatisfied, complains, or reports a problem

## Confidence Calibration
- 0.9-1.0: the sentiment is explicit and unambiguous
- 0.7-0.9: clear leaning with minor ambiguity
- 0.5-0.7: borderline or mixed signals

## Output Requirements
- label: exactly one of Positive, Neutral, Negative
- confidence: number between 0 and 1 for the chosen label
- key_terms: the words from the text that most influenced the decision, most influential first""",

    "es": """Eres un analista de feedback de clientes. Tu tarea es clasificar el sentimiento de un único comentario de cliente.

## Etiquetas
- Positive: el cliente está satisfecho, elogia el producto o servicio, o lo recomienda
- Neutral: comentario mixto, descriptivo o tibio, sin una inclinación clara
- Negative: el cliente está insatisfecho, se queja o reporta un problema

## Calibración de la confianza
- 0.9-1.0: el sentimiento es explícito e inequívoco
- 0.7-0.9: inclinación clara con ligera ambigüedad
- 0.5-0.7: caso límite o señales mixtas

## Requisitos de salida
- label: exactamente uno de Positive, Neutral, Negative (en inglés)
- confidence: número entre 0 y 1 para la etiqueta elegida
- key_terms: las palabras del texto que más influyeron, la más influyente primero""",
}

KEY_TERM_COUNT = 3


@dataclass
class SentimentContext:
    """Runtime context passed to the agent as ``deps``.

    Attributes:
        language: Prompt language ('en' or 'es')
    """
    language: str = "en"


def _parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[len("openai:"):]
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def _create_model(config: Config) -> Model:
    """Create the PydanticAI model for the configured model string.

    Supports:
    - Gemini: 'google-gla:gemini-3-flash-preview' (uses GEMINI_API_KEY)
    - Local OpenAI-compatible server: 'openai:{model_name}@http://127.0.0.1:8080/v1'

    Raises:
        ConfigurationError: If the model string matches neither form
    """
    parsed = _parse_local_model(config.classifier_model)
    if parsed:
        model_name, base_url = parsed
        logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
        # Local servers don't need authentication - use placeholder
        client = AsyncOpenAI(base_url=base_url, api_key="local-model")
        profile = OpenAIModelProfile(supports_json_object_output=False)
        return OpenAIModel(
            model_name=model_name,
            provider=OpenAIProvider(openai_client=client),
            profile=profile,
        )

    provider_name, _, model_name = config.classifier_model.partition(":")
    if provider_name != "google-gla" or not model_name:
        raise ConfigurationError(
            f"Unsupported CLASSIFIER_MODEL '{config.classifier_model}' - "
            "expected 'google-gla:<model>' or 'openai:<model>@<base_url>'"
        )
    return GoogleModel(model_name, provider=GoogleProvider(api_key=config.require_api_key()))


def _create_agent(model: Model, local: bool = False) -> Agent[SentimentContext, SentimentPrediction]:
    """Create the underlying PydanticAI agent.

    The agent uses:
    - Structured output: SentimentPrediction (prompted JSON for local servers
      without tool support)
    - Dynamic system prompt: selected from the language context
    - retries=0: a schema violation fails the run instead of re-prompting
    """
    agent = Agent(
        model,
        output_type=PromptedOutput(SentimentPrediction) if local else SentimentPrediction,
        system_prompt=SENTIMENT_PROMPTS["en"],  # Default fallback
        retries=0,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[SentimentContext]) -> str:
        """Select system prompt based on language setting."""
        return SENTIMENT_PROMPTS.get(ctx.deps.language, SENTIMENT_PROMPTS["en"])

    return agent


def build_user_message(text: str) -> str:
    """Build the user message for one classification request."""
    return (
        "Analyze the sentiment of the following text. Classify it as Positive, Neutral or Negative, "
        "give a confidence probability between 0 and 1, and identify "
        f"{KEY_TERM_COUNT} key words that influenced this result.\n\n"
        f'Text: "{text}"'
    )


class SentimentClassifier:
    """Classifies feedback sentiment with a single structured model call.

    The model and agent are built lazily on the first call, after the
    credential check, so a missing GEMINI_API_KEY is reported as a
    ConfigurationError before any provider or network client exists.

    Example:
        >>> classifier = SentimentClassifier(config)
        >>> prediction = await classifier.classify("Excellent service, very fast.")
        >>> prediction.label
        <SentimentLabel.POSITIVE: 'Positive'>
    """

    def __init__(self, config: Config, model: Model | None = None):
        """Initialize the classifier.

        Args:
            config: Application configuration (key, model, language, timeout)
            model: Explicit PydanticAI model, overrides CLASSIFIER_MODEL
        """
        self.config = config
        self._context = SentimentContext(language=config.language)
        self._local = _parse_local_model(config.classifier_model) is not None and model is None
        self._model = model
        self._agent: Agent[SentimentContext, SentimentPrediction] | None = None

    @property
    def timeout(self) -> float | None:
        """Per-call timeout in seconds, or None when disabled."""
        return self.config.request_timeout or None

    def _get_agent(self) -> Agent[SentimentContext, SentimentPrediction]:
        if self._agent is None:
            model = self._model if self._model is not None else _create_model(self.config)
            self._agent = _create_agent(model, local=self._local)
        return self._agent

    async def classify(self, text: str) -> SentimentPrediction:
        """Classify one feedback text.

        Args:
            text: Non-empty feedback text

        Returns:
            Validated SentimentPrediction

        Raises:
            ConfigurationError: GEMINI_API_KEY is missing or CLASSIFIER_MODEL is unsupported
            ValueError: text is empty
            ClassifierTimeoutError: no response within the configured timeout
            ClassifierTransportError: network or provider failure
            SchemaViolationError: response did not match the output schema
        """
        if not self._local:
            self.config.require_api_key()
        if not text or not text.strip():
            raise ValueError("Cannot classify empty text")

        agent = self._get_agent()

        with trace_operation("classify_sentiment", {"chars": len(text)}) as span:
            try:
                result = await asyncio.wait_for(
                    agent.run(build_user_message(text), deps=self._context),
                    timeout=self.timeout,
                )
            except TimeoutError as e:
                logger.warning("Classification timed out | timeout=%ss chars=%d", self.timeout, len(text))
                raise ClassifierTimeoutError(f"No response within {self.timeout}s") from e
            except ModelHTTPError as e:
                logger.warning(
                    "Classification service error | status=%s model=%s body=%s",
                    e.status_code, e.model_name, e.body,
                )
                raise ClassifierTransportError(f"Service returned HTTP {e.status_code}") from e
            except (UnexpectedModelBehavior, ValidationError) as e:
                logger.error("Classification response violated schema | error=%s", e)
                raise SchemaViolationError(str(e)) from e
            except (httpx.HTTPError, OSError) as e:
                logger.warning("Classification transport failure | error=%s type=%s", e, type(e).__name__)
                raise ClassifierTransportError(str(e)) from e
            except Exception as e:
                logger.error("Classification failed unexpectedly | error=%s type=%s", e, type(e).__name__, exc_info=True)
                raise ClassificationError(str(e)) from e

            prediction = result.output
            span["label"] = prediction.label.value
            span["confidence"] = prediction.confidence

        usage = result.usage()
        logger.debug(
            "Classified: %s... -> %s | requests=%d tokens=%d",
            text[:50],
            prediction,
            usage.requests,
            usage.total_tokens or 0,
        )
        return prediction
