#!/usr/bin/env python3
"""Sentix: customer feedback sentiment dashboard powered by a PydanticAI agent.

Every command runs one in-memory session: the history starts with a few
example records and is discarded when the command exits.

Commands:
    analyze     Classify one or more texts and print the outcomes
    session     Interactive session: submit feedback, inspect stats and history
    stats       Show the dashboard snapshot (counts, distribution, trend)
    export      Write the (filtered) history log as CSV
    status      Show configuration

Examples:
    python main.py analyze "Excellent service, very fast."
    python main.py session --lang es
    python main.py export --label Negative --output negative.csv
    python main.py stats

Environment:
    GEMINI_API_KEY: Required for analysis
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path

from agents.sentiment import SentimentClassifier
from config import Config
from errors import ConfigurationError
from history import HistoryStore, RecordAdded
from models.sentiment import SentimentLabel
from observability.logging import set_session_context, setup_logging
from observability.tracing import setup_tracing
from orchestrator import AnalysisDispatcher, AnalysisOrchestrator, SubmitAnalysis
from views import DashboardSnapshot, export_csv, filter_records, write_csv

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


@dataclass
class Session:
    """Application context for one dashboard session.

    Owns the history store and hands the writer to the orchestrator only;
    everything else receives the store for reading.
    """

    id: str
    config: Config
    store: HistoryStore
    orchestrator: AnalysisOrchestrator


def build_session(config: Config, classifier=None) -> Session:
    """Create a seeded session.

    Args:
        config: Application configuration
        classifier: Classification client (defaults to SentimentClassifier)

    Returns:
        New Session
    """
    session_id = uuid.uuid4().hex[:8]
    set_session_context(session_id)

    store = HistoryStore.with_seed_data()
    orchestrator = AnalysisOrchestrator(
        classifier or SentimentClassifier(config),
        store.writer(),
        min_text_length=config.min_text_length,
        language=config.language,
    )
    logger.debug("Session started | id=%s seeded=%d", session_id, len(store))
    return Session(id=session_id, config=config, store=store, orchestrator=orchestrator)


def _label_arg(value: str | None) -> SentimentLabel | None:
    if not value or value.lower() == "all":
        return None
    return SentimentLabel(value.capitalize())


def cmd_analyze(args: argparse.Namespace, config: Config) -> int:
    """Classify each text in order and print one JSON outcome per line.

    Returns:
        Exit code (1 if any submission did not complete)
    """
    session = build_session(config)

    async def run() -> list:
        async with AnalysisDispatcher(session.orchestrator) as dispatcher:
            return [await dispatcher.dispatch(SubmitAnalysis(text)) for text in args.texts]

    outcomes = asyncio.run(run())
    for outcome in outcomes:
        print(json.dumps(outcome.to_dict(), ensure_ascii=False))
    return EXIT_OK if all(o.ok for o in outcomes) else EXIT_FAILURE


def _print_history(store: HistoryStore, limit: int) -> None:
    for record in store.latest(limit):
        terms = ", ".join(record.key_terms or ())
        print(f"{record.id:<12} {record.label.value:<8} {record.confidence:6.1%}  {record.text[:60]}  [{terms}]")


async def _session_loop(session: Session) -> None:
    def on_record_added(event: RecordAdded) -> None:
        r = event.record
        print(f"+ {r.id} {r.label.value} ({r.confidence:.1%}) key terms: {', '.join(r.key_terms or ())}")

    unsubscribe = session.store.subscribe(on_record_added)
    print("Type feedback to analyze. Commands: :stats  :history  :export [path]  :quit")
    try:
        async with AnalysisDispatcher(session.orchestrator) as dispatcher:
            while True:
                try:
                    line = await asyncio.to_thread(input, "> ")
                except EOFError:
                    break

                command, _, rest = line.strip().partition(" ")
                if command == ":quit":
                    break
                if command == ":stats":
                    snapshot = DashboardSnapshot.from_store(session.store, session.config.trend_size)
                    print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
                    continue
                if command == ":history":
                    _print_history(session.store, len(session.store))
                    continue
                if command == ":export":
                    path = write_csv(session.store.records(), Path(rest.strip() or session.config.export_path))
                    print(f"Exported {len(session.store)} records to {path}")
                    continue

                outcome = await dispatcher.dispatch(SubmitAnalysis(line))
                if not outcome.ok:
                    print(f"! {outcome.message}")
    finally:
        unsubscribe()


def cmd_session(args: argparse.Namespace, config: Config) -> int:
    """Run an interactive session on stdin."""
    session = build_session(config)
    asyncio.run(_session_loop(session))
    return EXIT_OK


def cmd_stats(args: argparse.Namespace, config: Config) -> int:
    """Print the dashboard snapshot of a freshly seeded session."""
    session = build_session(config)
    snapshot = DashboardSnapshot.from_store(session.store, args.trend_size or config.trend_size)
    print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
    return EXIT_OK


def cmd_export(args: argparse.Namespace, config: Config) -> int:
    """Export the filtered history log as CSV."""
    session = build_session(config)
    records = filter_records(session.store.records(), search=args.search, label=_label_arg(args.label))
    if not records:
        print("No records match the filter; nothing exported", file=sys.stderr)
        return EXIT_FAILURE
    if args.output == "-":
        print(export_csv(records))
    else:
        path = write_csv(records, Path(args.output or config.export_path))
        print(f"Exported {len(records)} records to {path}")
    return EXIT_OK


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Print configuration (never the API key itself)."""
    status = {
        "api_key_configured": bool(config.gemini_api_key),
        "classifier_model": config.classifier_model,
        "language": config.language,
        "min_text_length": config.min_text_length,
        "request_timeout": config.request_timeout,
        "trend_size": config.trend_size,
        "export_path": str(config.export_path),
        "enable_logfire": config.enable_logfire,
    }
    print(json.dumps(status, indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sentix: customer feedback sentiment dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Classify one or more texts")
    analyze_parser.add_argument("texts", nargs="+", help="Feedback texts, analyzed in order")
    analyze_parser.add_argument("--lang", choices=["en", "es"], help="Prompt and message language")

    session_parser = subparsers.add_parser("session", help="Interactive analysis session")
    session_parser.add_argument("--lang", choices=["en", "es"], help="Prompt and message language")

    stats_parser = subparsers.add_parser("stats", help="Show dashboard statistics")
    stats_parser.add_argument(
        "--trend-size",
        type=int,
        default=0,
        help="Records in the confidence trend (default: config TREND_SIZE)",
    )

    export_parser = subparsers.add_parser("export", help="Export the history log as CSV")
    export_parser.add_argument(
        "--output",
        help="Output path, '-' for stdout (default: config EXPORT_PATH)",
    )
    export_parser.add_argument("--search", default="", help="Only records whose text contains this")
    export_parser.add_argument(
        "--label",
        choices=["all", "positive", "neutral", "negative", "Positive", "Neutral", "Negative"],
        default="all",
        help="Only records with this label",
    )

    subparsers.add_parser("status", help="Show configuration")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.load()
    if getattr(args, "lang", None):
        config.language = args.lang

    setup_logging(config, verbose=args.verbose)
    setup_tracing(enabled=config.enable_logfire, service_name="sentix", token=config.logfire_token)

    error = config.validate()
    if error:
        print(f"Configuration error: {error}", file=sys.stderr)
        return EXIT_CONFIG

    commands = {
        "analyze": cmd_analyze,
        "session": cmd_session,
        "stats": cmd_stats,
        "export": cmd_export,
        "status": cmd_status,
    }

    if args.command not in commands:
        parser.print_help()
        return EXIT_OK

    try:
        return commands[args.command](args, config)
    except ConfigurationError as e:
        logger.error("Configuration error | cmd=%s error=%s", args.command, e)
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
