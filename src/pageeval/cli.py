# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageEval CLI: evaluate a script function against a local document.

Usage:
    python -m pageeval.cli run --html PAGE.html --script-fn "function () { return document.title }"
    python -m pageeval.cli run --html PAGE.html --script extract.js --arg 1 --arg '"two"' [--format json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

from .errors import PageEvalError, ValidationError

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _read_text(path_str: str) -> str:
    """Read a UTF-8 file, or stdin for '-'."""
    if path_str == "-":
        return sys.stdin.read()
    path = Path(path_str)
    if not path.is_file():
        raise ValidationError(f"file not found: {path_str}")
    return path.read_text(encoding="utf-8")


def _parse_arg(raw: str) -> Any:
    """Script arguments are JSON literals; bare words fall back to strings."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_viewport(raw: str) -> dict[str, int]:
    width, sep, height = raw.lower().partition("x")
    if not sep or not width.isdigit() or not height.isdigit():
        raise argparse.ArgumentTypeError(f"viewport must look like 1280x800, got {raw!r}")
    return {"width": int(width), "height": int(height)}


def build_options(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed CLI arguments into evaluator options."""
    options: dict[str, Any] = {
        "args": [_parse_arg(a) for a in args.arg],
        "styles": [_read_text(p) for p in args.style_file],
        "wait_for_js": args.wait_for_js,
        "timeout": args.timeout,
    }
    if args.html:
        options["html"] = str(Path(args.html).resolve())
    if args.content_file:
        options["content"] = _read_text(args.content_file)
    if args.script:
        options["script_fn"] = _read_text(args.script)
    elif args.script_fn:
        options["script_fn"] = args.script_fn
    if args.wait_for_js_var:
        options["wait_for_js_var_name"] = args.wait_for_js_var
    if args.wait_until:
        options["wait_until"] = args.wait_until
    if args.viewport:
        options["viewport"] = args.viewport
    return options


def _json_default(value: Any) -> Any:
    # JS Date arrives as datetime; anything else non-JSON is printed as text
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def format_result(result: Any, fmt: str) -> str:
    if fmt == "text" and isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, indent=2 if fmt == "json" else None, default=_json_default)


def cmd_run(args: argparse.Namespace) -> None:
    """Evaluate the script and print its result on stdout."""
    from .evaluator import create_evaluator

    options = build_options(args)
    launch_options = {"executable_path": args.executable} if args.executable else None
    evaluator = create_evaluator(launch_options)
    result = asyncio.run(evaluator(**options))
    print(format_result(result, args.format))


def _error_exit(exc: BaseException, verbose: bool) -> None:
    kind = exc.kind if isinstance(exc, PageEvalError) else type(exc).__name__
    print(f"Error [{kind}]: {exc}", file=sys.stderr)
    if verbose:
        import traceback

        traceback.print_exc(file=sys.stderr)
    sys.exit(EXIT_USAGE if isinstance(exc, ValidationError) else EXIT_FAILURE)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Evaluate JavaScript functions against local pages in headless Chromium",
        prog="pageeval",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (includes browser console)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _run_epilog = """\
examples:
  %(prog)s --html page.html --script-fn "function () { return document.title }"
  %(prog)s --html page.html --script count.js --arg '".item"'
  %(prog)s --content-file - --script-fn "function () { return 1 }" < page.html
  %(prog)s --html page.html --script ready.js --wait-for-js --timeout 5000
"""
    p_run = subparsers.add_parser(
        "run",
        help="Evaluate a script function against a document",
        epilog=_run_epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    source = p_run.add_mutually_exclusive_group()
    source.add_argument("--html", type=str, metavar="PATH", help="Document to load (resolved to an absolute path)")
    source.add_argument("--content-file", type=str, metavar="PATH", help="Read inline markup from PATH ('-' for stdin)")
    script = p_run.add_mutually_exclusive_group()
    script.add_argument("--script", type=str, metavar="PATH", help="File holding the function expression")
    script.add_argument("--script-fn", type=str, metavar="SOURCE", help="Function expression source text")
    p_run.add_argument(
        "--arg", action="append", default=[], metavar="JSON", help="Positional argument (repeatable, JSON literal)"
    )
    p_run.add_argument(
        "--style-file", action="append", default=[], metavar="PATH", help="CSS injected at <head> start (repeatable)"
    )
    p_run.add_argument("--wait-for-js", action="store_true", help="Wait for the page readiness flag before evaluating")
    p_run.add_argument("--wait-for-js-var", type=str, metavar="NAME", help="Readiness flag name on window")
    p_run.add_argument("--wait-until", type=str, metavar="COND", help="Navigation wait condition (load, networkidle, …)")
    p_run.add_argument("--viewport", type=_parse_viewport, metavar="WxH", help="Viewport size, e.g. 1280x800")
    p_run.add_argument("--timeout", type=int, default=30000, metavar="MS", help="Overall timeout in ms")
    p_run.add_argument("--executable", type=str, metavar="PATH", help="Chromium executable to launch")
    p_run.add_argument(
        "--format", type=str, choices=["json", "compact", "text"], default="json", help="Result output format"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    from .logging_config import configure as configure_logging

    configure_logging(json_output=args.json_logs, verbose=args.verbose)

    commands = {"run": cmd_run}
    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except SystemExit:
        raise
    except Exception as e:
        _error_exit(e, args.verbose)


if __name__ == "__main__":
    main()
