"""CLI entry point for the Pivotal Tracker -> Trello importer."""

from __future__ import annotations

import logging
import os
import sys

from pivotal2trello.config import ImportConfig, get_credentials, load_env_file, load_import_config
from pivotal2trello.exceptions import (
    ConfigError,
    ImportAbortedError,
    OrderingError,
    PivotalAPIError,
    TrelloAPIError,
)
from pivotal2trello.importer import PivotalToTrelloImporter
from pivotal2trello.logging_config import setup_logging
from pivotal2trello.pivotal_client import PivotalReader
from pivotal2trello.prompts import Prompter
from pivotal2trello.trello_client import TrelloClient

logger = logging.getLogger("pivotal2trello.cli")

__doc__ = """
pivotal2trello - Re-runnable import of a Pivotal Tracker project into a Trello board

Usage:
    export PIVOTAL_TOKEN="your-pivotal-token"
    export TRELLO_API_KEY="your-key"
    export TRELLO_TOKEN="your-token"

    # Optional: skip the project / board prompts
    export PIVOTAL_PROJECT_ID="1234567"
    export TRELLO_BOARD_ID="your-board-id"   (or TRELLO_BOARD_URL)

    # Run the import (interactive)
    pivotal2trello

    # Answer list/label/owner questions from a JSON file
    pivotal2trello --config import.json

    # Restart an interrupted import after a given story ID
    pivotal2trello --resume-from 66727974

    # Test connection and credentials
    pivotal2trello --test-connection

Options:
    -v, --verbose        Debug logging
    -q, --quiet          Errors only
    --log-level LEVEL    DEBUG, INFO, WARNING or ERROR
    --log-file PATH      Also write the log to PATH (with timestamps)

Running the import again is safe: cards that already match a story are
updated in place, never duplicated.
"""


def _option_value(flag: str) -> str | None:
    """Value following ``flag`` in sys.argv; exits if the flag has no value"""
    if flag not in sys.argv:
        return None
    idx = sys.argv.index(flag)
    if idx + 1 >= len(sys.argv):
        logger.error(f"❌ Error: {flag} requires a value")
        sys.exit(1)
    return sys.argv[idx + 1]


def _test_connection(pivotal: PivotalReader, trello: TrelloClient) -> None:
    logger.info("🔍 Testing connection to Pivotal Tracker and Trello...")

    logger.info("📡 Test 1: Pivotal Tracker projects...")
    try:
        projects = pivotal.list_projects()
        logger.info(f"   ✅ Found {len(projects)} projects")
    except PivotalAPIError as e:
        logger.error(f"   ❌ Failed to list projects: {e}")
        sys.exit(1)

    logger.info("📡 Test 2: Trello credentials and boards...")
    try:
        trello.validate_credentials()
        boards = trello.list_boards(filter_status="open")
        logger.info(f"   ✅ Found {len(boards)} open boards")
        for board in boards[:5]:
            logger.info(f"      - {board['name']} ({board['id']})")
    except TrelloAPIError as e:
        logger.error(f"   ❌ Trello check failed: {e}")
        sys.exit(1)

    logger.info("")
    logger.info("✅ All connection tests passed!")
    sys.exit(0)


def _select_project(pivotal: PivotalReader, prompter: Prompter) -> None:
    if pivotal.project_id:
        return
    projects = pivotal.list_projects()
    pivotal.project_id = prompter.choose(
        "Which Pivotal project would you like to export?",
        {int(p["id"]): p["name"] for p in projects},
    )


def _select_board(trello: TrelloClient, prompter: Prompter) -> None:
    if trello.board_id:
        return
    boards = trello.list_boards()
    trello.board_id = prompter.choose(
        "Which Trello board would you like to import into?",
        {b["id"]: b["name"] for b in boards},
    )


def main() -> None:
    if "--help" in sys.argv or "-h" in sys.argv:
        print(__doc__)
        sys.exit(0)

    log_level = "INFO"
    if "--verbose" in sys.argv or "-v" in sys.argv:
        log_level = "DEBUG"
    elif "--quiet" in sys.argv or "-q" in sys.argv:
        log_level = "ERROR"
    elif "--log-level" in sys.argv:
        log_level = (_option_value("--log-level") or "INFO").upper()

    setup_logging(log_level, _option_value("--log-file"))

    load_env_file(os.getenv("PIVOTAL2TRELLO_ENV_FILE", ".env"))
    credentials = get_credentials()
    if credentials is None:
        logger.error("❌ Error: Missing required credentials")
        logger.error("\nRequired environment variables:")
        logger.error("  PIVOTAL_TOKEN      - Your Pivotal Tracker API token")
        logger.error("  TRELLO_API_KEY     - Your Trello API key")
        logger.error("  TRELLO_TOKEN       - Your Trello API token")
        logger.error("\nSet them in your environment or create a .env file.")
        sys.exit(1)

    resume_from = None
    resume_value = _option_value("--resume-from")
    if resume_value is not None:
        try:
            resume_from = int(resume_value)
        except ValueError:
            logger.error(f"❌ Error: --resume-from must be a story ID, got: {resume_value}")
            sys.exit(1)

    config = ImportConfig()
    config_path = _option_value("--config")
    if config_path:
        try:
            config = load_import_config(config_path)
            logger.info(f"✅ Loaded import config from: {config_path}")
        except (FileNotFoundError, ConfigError) as e:
            logger.error(f"❌ Error loading import config: {e}")
            sys.exit(1)

    pivotal = PivotalReader(credentials.pivotal_token, project_id=credentials.pivotal_project_id)
    try:
        trello = TrelloClient(
            credentials.trello_api_key,
            credentials.trello_token,
            board_id=credentials.trello_board_id,
            board_url=credentials.trello_board_url,
        )
    except ValueError as e:
        logger.error(f"❌ Error: {e}")
        sys.exit(1)

    if "--test-connection" in sys.argv:
        _test_connection(pivotal, trello)

    prompter = Prompter()
    try:
        _select_project(pivotal, prompter)
        _select_board(trello, prompter)
        trello.validate_credentials()

        importer = PivotalToTrelloImporter(pivotal, trello, prompter, config)
        importer.run(resume_from=resume_from)
    except ImportAbortedError as e:
        logger.error(f"🛑 {e}")
        sys.exit(1)
    except OrderingError as e:
        logger.error(f"❌ Cannot determine story order: {e}")
        sys.exit(1)
    except (PivotalAPIError, TrelloAPIError) as e:
        logger.error(f"❌ Import failed: {e}")
        logger.error("Cards already imported are kept; rerun (or use --resume-from) to continue.")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.error("\n🛑 Interrupted")
        sys.exit(1)


if __name__ == "__main__":
    main()
