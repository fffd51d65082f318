import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from pydantic import ValidationError

from deckpanel.client.api import DeckpanelClient
from deckpanel.client.controller import SessionController
from deckpanel.client.history import EvaluationHistory
from deckpanel.client.session import Screen, SessionStore
from deckpanel.core.entities import AudienceSelection
from deckpanel.core.errors import DeckpanelError
from deckpanel.core.events import ErrorEvent, EvaluationEvent, PersonasEvent, StreamEvent, SummaryEvent
from deckpanel.core.scoring import panel_score, score_label
from deckpanel.delivery.file_delivery import FileDelivery
from deckpanel.ingestion.parser_factory import parse_document
from deckpanel.services.config import Config, load_config
from deckpanel.services.logging import setup_logging

logger = logging.getLogger(__name__)


def parse_audience(value: str) -> AudienceSelection:
    """`investors` or `investors:expert`"""
    category_id, _, level = value.partition(":")
    try:
        return AudienceSelection(category_id=category_id.strip(), knowledge_level=level.strip() or None)
    except ValidationError:
        raise argparse.ArgumentTypeError(
            f"invalid audience {value!r}: use id or id:level with level expert, intermediate or novice"
        ) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deckpanel", description="Review a deck with a simulated audience panel")
    parser.add_argument("--session", default="default",
                        help="Session key; each key keeps its own state (default: default)")
    parser.add_argument("--server", default=None,
                        help="API base URL (default: SERVER_URL from config)")
    parser.add_argument("--config", default=None,
                        help="Path to config.yml (default: resources/config.yml)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("audiences", help="List the audience categories")

    evaluate = sub.add_parser("evaluate", help="Load a .pptx/.pdf deck and run the panel")
    evaluate.add_argument("file", help="Deck to review")
    evaluate.add_argument("--goal", required=True, help="What the presentation should achieve")
    evaluate.add_argument("--audience", action="append", type=parse_audience, required=True,
                          help="Audience category as id or id:level, repeatable")
    evaluate.add_argument("--context", default="", help="Free text about the audience")

    recommend = sub.add_parser("recommend", help="Show recommendations for the finished run")
    recommend.add_argument("--retry", action="store_true", help="Re-issue a failed request")

    sub.add_parser("status", help="Show the current session")
    sub.add_parser("back", help="Return from recommendations to results")

    export = sub.add_parser("export", help="Write the report as JSON and Markdown")
    export.add_argument("--output-dir", default=None, help="Directory for the report (default: REPORT_DIR)")
    export.add_argument("--stem", default=None, help="Report file name without extension")

    sub.add_parser("history", help="List recently completed runs")
    sub.add_parser("reset", help="Clear the session and start over")
    return parser


# ----------------------------
# Output
# ----------------------------
def print_event(event: StreamEvent, controller: SessionController) -> None:
    if isinstance(event, PersonasEvent):
        print(f"Panel of {len(event.personas)}:")
        for persona in event.personas:
            print(f"  - {persona.name}, {persona.title} [{persona.knowledge_level}]")
    elif isinstance(event, EvaluationEvent):
        names = {p.id: p.name for p in controller.state.personas}
        done = len(controller.state.evaluations)
        total = len(controller.state.personas)
        print(f"[{done}/{total}] {names.get(event.evaluation.persona_id, event.evaluation.persona_id)}: "
              f"{event.evaluation.decision} ({event.evaluation.decision_sentiment})")
        if controller.progress.is_slow:
            print(f"  still working after {controller.progress.elapsed:.0f}s, this is taking longer than usual")
    elif isinstance(event, SummaryEvent):
        print("")
        print(event.summary.text)
    elif isinstance(event, ErrorEvent):
        print(f"Evaluation failed: {event.message}", file=sys.stderr)


def print_status(controller: SessionController) -> None:
    state = controller.state
    print(f"Session:  {controller.store.session_key}")
    print(f"Screen:   {state.screen.value}")
    if state.file_name:
        print(f"Deck:     {state.file_name} ({len(state.slide_contents)} slides)")
    if state.goal:
        print(f"Goal:     {state.goal}")
    if state.evaluations:
        score = panel_score(state.evaluations)
        print(f"Panel:    {len(state.evaluations)} evaluations, score {score}% ({score_label(score)})")
    if state.recommendations:
        print(f"Advice:   {len(state.recommendations)} recommendations")
    if state.last_error:
        print(f"Error:    {state.last_error}")


def print_recommendations(controller: SessionController) -> None:
    state = controller.state
    print(state.main_advice)
    print("")
    for advice in state.structure_advice:
        print(f"* {advice.action.upper()}: {advice.description}")
    for rec in state.recommendations:
        pages = ", ".join(map(str, rec.slide_numbers)) or "whole deck"
        print(f"{rec.number}. [{rec.priority}] {rec.title} ({pages})")
        print(f"   {rec.text}")


# ----------------------------
# Commands
# ----------------------------
async def run_command(args: argparse.Namespace, config: Config) -> int:
    server_url = args.server or config.SERVER_URL
    store = SessionStore(config.SESSION_DIR, args.session)
    history = EvaluationHistory(config.HISTORY_DATABASE_PATH, limit=config.HISTORY_LIMIT)

    async with DeckpanelClient(server_url, timeout=config.LLM_TIMEOUT) as client:
        controller = SessionController(client, store, history=history, slow_after=config.SLOW_RUN_SECONDS)

        if args.command == "audiences":
            for segment in await client.list_audiences():
                print(f"{segment.id:22} {segment.label}")
            return 0

        if args.command == "evaluate":
            slides = parse_document(args.file)
            controller.reset()
            controller.load_deck(slides, file_name=os.path.basename(args.file))
            controller.configure(goal=args.goal, audience_selections=args.audience, audience_context=args.context)
            print(f"Reviewing {len(slides)} slides from {args.file}")
            ok = await controller.run_evaluation(on_event=lambda event: print_event(event, controller))
            if ok:
                score = panel_score(controller.state.evaluations)
                print(f"\nPanel score: {score}% ({score_label(score)}) in {controller.progress.elapsed:.0f}s")
            return 0 if ok else 1

        if args.command == "recommend":
            if args.retry:
                ok = await controller.retry_recommendations()
            else:
                ok = await controller.show_recommendations()
            if not ok:
                print(f"Recommendations failed: {controller.state.last_error}", file=sys.stderr)
                print("Run `deckpanel recommend --retry` to try again.", file=sys.stderr)
                return 1
            print_recommendations(controller)
            return 0

        if args.command == "status":
            print_status(controller)
            return 0

        if args.command == "back":
            controller.back()
            print_status(controller)
            return 0

        if args.command == "export":
            if controller.screen not in (Screen.RESULTS, Screen.RECOMMENDATIONS):
                raise ValueError("Finish an evaluation before exporting")
            stem = args.stem or os.path.splitext(controller.state.file_name or "deck")[0] + "-review"
            delivery = FileDelivery(args.output_dir or config.REPORT_DIR)
            for path in await delivery.deliver(stem=stem, state=controller.state):
                print(path)
            return 0

        if args.command == "history":
            await history.init_tables()
            for record in await history.recent():
                score = panel_score(record.evaluations)
                print(f"{record.created_at[:19]}  {score:3d}%  {record.file_name or '-':30}  {record.goal}")
            return 0

        if args.command == "reset":
            controller.reset()
            print("Session cleared")
            return 0

    raise ValueError(f"Unknown command: {args.command}")


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(config.LOG_LEVEL)

    try:
        return await run_command(args, config)
    except (DeckpanelError, ValueError, FileNotFoundError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
