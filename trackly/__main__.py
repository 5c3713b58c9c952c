"""Interactive console entry point: python -m trackly"""

import argparse
import asyncio
import logging

from .app import TracklyApp, setup_logging
from .config import load_config


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Trackly - timestamped journal entries from the terminal")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a JSON config file (default: built-in defaults plus TRACKLY_* env vars)",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Trackly API base URL (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    return parser.parse_args()


def main() -> None:
    """Run the interactive Trackly console."""
    args = parse_args()
    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    config = load_config(args.config)
    if args.api_url:
        config["api_base_url"] = args.api_url
    logger.info(f"API: {config['api_base_url']}")

    try:
        asyncio.run(TracklyApp(config).run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
