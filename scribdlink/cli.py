"""CLI entry point for scribdlink."""

from __future__ import annotations

import argparse
import functools
import logging
import sys
import time
from pathlib import Path

from scribdlink.config import ResolverConfig
from scribdlink.download import download_file, safe_filename
from scribdlink.errors import ConfigurationError
from scribdlink.interception import WAIT_STRATEGIES, run_local
from scribdlink.providers import detect_provider
from scribdlink.providers.scribd import extract_scribd_info
from scribdlink.resolver import Failure, resolve


def _elapsed(start: float) -> str:
    """Format elapsed time since *start* as a human-readable string."""
    secs = time.time() - start
    if secs < 60:
        return f"{secs:.1f}s"
    mins = int(secs // 60)
    remainder = secs % 60
    return f"{mins}m {remainder:.1f}s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scribdlink",
        description="Resolve a Scribd document URL into a direct download link.",
    )
    parser.add_argument("url", help="URL of the Scribd document")
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Download the document to this path after resolving it.",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Download the document, naming the file after its title.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging.",
    )

    browser = parser.add_argument_group("browser options")
    browser.add_argument(
        "--api-key",
        default=None,
        help="Browserless API key (default: $BROWSERLESS_API_KEY).",
    )
    browser.add_argument(
        "--host",
        default=None,
        help="Browserless host (default: $BROWSERLESS_DOMAIN or the production host).",
    )
    browser.add_argument(
        "--block-scripts",
        action="store_true",
        default=None,
        help="Abort script requests as well as images, styles, fonts and media.",
    )
    browser.add_argument(
        "--wait-until",
        choices=WAIT_STRATEGIES,
        default=None,
        help="Page-ready signal to wait for before settling.",
    )
    browser.add_argument(
        "--settle-ms",
        type=int,
        default=None,
        help="Delay after the ready signal (default: 500 with --block-scripts, else 1500).",
    )
    mode = browser.add_mutually_exclusive_group()
    mode.add_argument(
        "--local",
        action="store_true",
        help="Run the browser locally with Playwright instead of Browserless.",
    )
    mode.add_argument(
        "--cdp",
        default=None,
        metavar="URL",
        help="Attach to a running Chrome over CDP instead of Browserless.",
    )
    browser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window (with --local).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    provider_cls = detect_provider(args.url)
    if provider_cls is None:
        print(f"Error: no provider can handle URL: {args.url}", file=sys.stderr)
        sys.exit(1)

    overrides = {
        "api_key": args.api_key,
        "provider_host": args.host,
        "block_scripts": args.block_scripts,
        "wait_until": args.wait_until,
        "settle_ms": args.settle_ms,
    }
    try:
        env_config = ResolverConfig.from_env(require_key=False)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    config = env_config.model_copy(
        update={k: v for k, v in overrides.items() if v is not None},
    )

    runner = None
    if args.local or args.cdp:
        runner = functools.partial(
            run_local, cdp_url=args.cdp, headless=not args.headful,
        )

    t_start = time.time()
    where = "locally" if runner else f"via {config.provider_host}"
    print(f"[scribdlink] Resolving {args.url} {where} …", file=sys.stderr)
    outcome = resolve(args.url, config, runner=runner, provider=provider_cls())
    if isinstance(outcome, Failure):
        print(f"Error: {outcome.message}", file=sys.stderr)
        sys.exit(1)
    print(f"[scribdlink] Resolved ({_elapsed(t_start)})", file=sys.stderr)
    print(outcome.download_link)

    output = Path(args.output) if args.output else None
    if output is None and args.save:
        output = Path(safe_filename(extract_scribd_info(args.url).title))
    if output is not None:
        t_step = time.time()
        try:
            download_file(outcome.download_link, output)
        except (RuntimeError, OSError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        print(f"[scribdlink] Download finished ({_elapsed(t_step)})", file=sys.stderr)


if __name__ == "__main__":
    main()
