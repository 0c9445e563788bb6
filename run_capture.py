"""
Entry point for page capture: opens each page in a persistent Chromium
profile, waits for it to render, runs optional scripted actions, and saves a
labelled screenshot plus thumbnail per page.

Ctrl+C pauses the queue at the next checkpoint; you are then asked whether to resume.
"""

from __future__ import annotations

import argparse
import sys

from page_capture.core.config import (
    DEFAULT_PRESET,
    DEFAULT_URL_PATTERN,
    DEFAULT_WAIT_SECONDS,
    HEADLESS,
    OUT_DIR,
    PRESETS,
)
from page_capture.core.errors import AppError, handle_error
from page_capture.core.orchestrator import print_summary, run
from page_capture.dom.actions import load_action_sequences
from page_capture.utils.naming import process_url_list, read_url_file


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Capture screenshots of web application pages")
    parser.add_argument("urls", nargs="*", help="Page URLs to capture")
    parser.add_argument("--file", help="Text file with one URL per line")
    parser.add_argument("--actions", help="JSON file with action sequences to run on every page")
    parser.add_argument("--preset", default=DEFAULT_PRESET, choices=sorted(PRESETS), help="Viewport size preset")
    parser.add_argument("--full-page", action="store_true", help="Capture the full scroll height")
    parser.add_argument("--wait", type=float, default=DEFAULT_WAIT_SECONDS, help="Seconds to let each page render")
    parser.add_argument("--pattern", default=DEFAULT_URL_PATTERN, help="Regex whose groups name the files")
    parser.add_argument("--out", default=str(OUT_DIR), help="Output directory")
    parser.add_argument("--headful", action="store_true", default=not HEADLESS, help="Show the browser")
    parser.add_argument("--require-login", action="store_true", help="Refuse to run without a saved browser profile")
    parser.add_argument("--retry", action="store_true", help="Retry failed pages once at the end")
    parser.add_argument("--no-prompt", action="store_true", help="Do not ask to resume after a pause")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        urls = read_url_file(args.file) if args.file else []
        urls += process_url_list("\n".join(args.urls))
        sequences = load_action_sequences(args.actions) if args.actions else []
    except (AppError, OSError, ValueError) as e:
        handle_error(e)
        return 2

    queue, summary, run_dir = run(
        urls,
        sequences=sequences,
        preset=args.preset,
        full_page=args.full_page,
        wait_seconds=args.wait,
        url_pattern=args.pattern,
        headless=not args.headful,
        require_login=args.require_login,
        auto_retry=args.retry,
        interactive=not args.no_prompt,
        out_dir=args.out,
    )
    print_summary(queue, summary, run_dir)
    return 0 if summary is not None and not queue.store.failed_urls else 1


if __name__ == "__main__":
    sys.exit(main())
