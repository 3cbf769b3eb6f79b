"""Main application entry point"""

import argparse
import sys
from typing import List, Optional

from signal_gate.api.app import run_server
from signal_gate.config.settings import Settings, get_settings, set_settings


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Signal Gate API server")
    parser.add_argument("--config", help="YAML or JSON settings file (defaults to environment variables)")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Bind port")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_file(args.config) if args.config else get_settings()
    if args.host:
        settings.api.host = args.host
    if args.port:
        settings.api.port = args.port
    if args.log_level:
        settings.logging.level = args.log_level
    set_settings(settings)
    return settings


def main(argv: Optional[List[str]] = None) -> None:
    """Main application function"""
    args = parse_args(argv)
    try:
        settings = load_settings(args)
        settings.validate()
    except (FileNotFoundError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    run_server(settings)


if __name__ == "__main__":
    main()
