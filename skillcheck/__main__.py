import argparse
import logging
import sys

from .api.core.exceptions import ConfigurationError
from .app import build_db_manager, create_app
from .core.db import wait_for_db
from .setting import get_settings


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    for noisy in ("httpx", "httpcore", "openai", "werkzeug", "psycopg2", "sqlalchemy"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def main():
    """Main entry point for the SkillCheck evaluation API."""
    parser = argparse.ArgumentParser(description="SkillCheck Evaluation API")
    parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port for the web server"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before serving (development; use alembic in production)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Run in debug mode"
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    settings = get_settings()

    try:
        db_manager = build_db_manager(settings)
    except ConfigurationError as e:
        logger.error(e.message)
        sys.exit(1)

    if not wait_for_db(db_manager):
        logger.error("Database is not reachable, giving up")
        sys.exit(1)
    if args.init_db:
        db_manager.init_db()

    app = create_app(db_manager=db_manager, settings=settings)

    logger.info(f"Starting server on http://0.0.0.0:{args.port}")
    app.run(host="0.0.0.0", port=args.port, debug=args.debug, threaded=True)


if __name__ == "__main__":
    main()
