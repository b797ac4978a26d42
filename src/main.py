"""CLI entry point for the care-agent pipeline.

A terminal chat loop for testing an agent persona against the real database
and model gateway.  Runs the pipeline in-process as a trusted operator, so no
bearer token is needed.  For production, use the FastAPI server (src/server.py).

Usage:
    uv run python -m src.main --agent clara-member --member-id <uuid>
    uv run python -m src.main --agent isabella --facility-id <uuid> --debug
"""

from __future__ import annotations

import argparse
import logging
import uuid

from dotenv import load_dotenv

from src.agent import create_care_pipeline
from src.errors import PipelineError
from src.models import ConversationContext
from src.pipeline.personas import PERSONAS, get_persona

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Care Agents CLI")
    parser.add_argument("--agent", default="clara-member", choices=sorted(PERSONAS))
    parser.add_argument("--member-id")
    parser.add_argument("--facility-id")
    parser.add_argument("--company-id")
    parser.add_argument("--language", default="en")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    persona = get_persona(args.agent)
    context = ConversationContext(
        member_id=args.member_id,
        facility_id=args.facility_id,
        company_id=args.company_id,
    )

    print("\n" + "=" * 60)
    print(f"  Care Agents CLI — {persona.name}")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    pipeline = create_care_pipeline()
    session_id = str(uuid.uuid4())
    history: list[dict[str, str]] = []
    logger.info("Started new session: %s", session_id)

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        if user_input.lower() == "new":
            session_id = str(uuid.uuid4())
            history = []
            print(f"\n>> New session started: {session_id[:8]}...\n")
            continue

        turn = [*history, {"role": "user", "content": user_input}]
        try:
            result = pipeline.run(
                persona, turn, context=context, language=args.language, session_id=session_id,
            )
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except PipelineError as e:
            print(f"\n[error {e.status_code}] {e.message}\n")
            continue
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nSomething went wrong: {e}")
            print("     Please try again or type 'new' to start a fresh session.\n")
            continue

        history = [*turn, {"role": "assistant", "content": result.message}]
        if result.handoff:
            print(f"\n  (consulted {result.handoff.agent})")
        print(f"\n{result.agent}: {result.message}\n")


if __name__ == "__main__":
    main()
