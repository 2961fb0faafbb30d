"""Protean Engine runner for the KevaMarket domain.

With ``PROTEAN_ENV=production`` commands and events are processed
asynchronously; the Engine runs the event handlers (notifications) and
command handlers outside the web process.

Usage:
    python src/server.py
    python src/server.py --test-mode   # Drain pending messages and exit
"""

import argparse

from protean.server.engine import Engine


def _get_domain():
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


def run(test_mode: bool):
    engine = Engine(_get_domain(), test_mode=test_mode)
    engine.run()


def main():
    parser = argparse.ArgumentParser(description="KevaMarket Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process pending messages once and exit",
    )
    args = parser.parse_args()

    run(args.test_mode)


if __name__ == "__main__":
    main()
