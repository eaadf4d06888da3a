"""cli entrypoint for llm canvas."""

import argparse
import logging

from .app import run
from .core.client import DEFAULT_PROXY_URL


def main():
    parser = argparse.ArgumentParser(
        description="llm canvas - branching chat threads on a canvas"
    )
    parser.add_argument(
        "session",
        nargs="?",
        help="path to an exported session json file (default: restore the autosave)",
    )
    parser.add_argument("--mock", "-m", action="store_true", help="use mock client")
    parser.add_argument("--claude", action="store_true", help="use claude-agent-sdk instead of the proxy")
    parser.add_argument("--proxy-url", default=DEFAULT_PROXY_URL, help="chat proxy endpoint")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    run(
        session_path=args.session,
        mock=args.mock,
        use_claude=args.claude,
        proxy_url=args.proxy_url,
    )


if __name__ == "__main__":
    main()
