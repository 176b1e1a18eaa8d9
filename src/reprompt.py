#!/usr/bin/env python3
"""
reprompt.py — Clean the clipboard after copying out of a terminal UI.

Reads the clipboard, removes box-drawing frames, padding, escape codes and
mojibake, writes the result back and verifies it. If anything goes wrong
the original clipboard content is put back.

Usage:
    reprompt              clean the clipboard in place
    reprompt --dry-run    print the cleaned text, leave the clipboard alone
    reprompt -v           debug logging on stderr

Exit codes: 0 cleaned or nothing to do, 1 rolled back, 2 clipboard unavailable.
"""
import argparse
import logging
import os
import sys

from colorama import Fore, init
from dotenv import find_dotenv, load_dotenv

from clipboard_backends import detect_backend
from clipboard_txn import COMMITTED, FAILED, sanitize_clipboard
from reprompt_config import Settings

__version__ = "0.2.0"

EXIT_OK = 0
EXIT_ROLLED_BACK = 1
EXIT_FAILED = 2

_handlers = []


def setup_logging(verbose: bool = False, log_file: str = None):
    """Console logging on stderr, plus an optional append-only debug log file."""
    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter("[reprompt] %(levelname)s %(name)s: %(message)s"))
    _handlers.append(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(name)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        ))
        _handlers.append(file_handler)

    for handler in _handlers:
        root.addHandler(handler)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Clean the clipboard after copying from a terminal UI: '
                    'strip borders, padding, escape codes and mojibake, keep code.'
    )
    parser.add_argument('--dry-run', action='store_true',
                        help='Print the cleaned text instead of writing it back')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log every phase to stderr')
    parser.add_argument('--version', action='version', version=f'reprompt {__version__}')
    args = parser.parse_args(argv)

    load_dotenv(find_dotenv(usecwd=True))
    init(autoreset=True)

    settings = Settings.from_env()
    setup_logging(args.verbose, settings.log_file)
    log = logging.getLogger("reprompt")
    log.debug(f"reprompt {__version__} with {settings!r}")

    port = detect_backend(settings)
    outcome = sanitize_clipboard(port, settings, dry_run=args.dry_run)
    log.debug(f"Outcome: {outcome!r} stats={outcome.stats}")

    if outcome.ok:
        if args.dry_run:
            if outcome.text:
                print(outcome.text, end='' if outcome.text.endswith('\n') else '\n')
        elif outcome.status == COMMITTED:
            print(f"{Fore.GREEN}✨")
        return EXIT_OK

    print(f"{Fore.RED}✗ {outcome.message()}", file=sys.stderr)
    if outcome.restore_attempted and not outcome.restored:
        print(f"{Fore.YELLOW}  original clipboard could not be restored", file=sys.stderr)
    return EXIT_FAILED if outcome.status == FAILED else EXIT_ROLLED_BACK


if __name__ == '__main__':
    sys.exit(main())
