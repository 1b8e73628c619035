#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# archivo principal (mínimo)

from __future__ import annotations

import argparse
import sys

from previewer.errors import UsageError

USAGE_MESSAGE = """
Usage: render_preview.py <path/to/in/3d_model> <path/to/out/preview>

  <path/to/in/3d_model> The filename of the 3D model to render
  <path/to/out/preview> The filename to save the preview image to
"""

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_MISSING_MODEL = 2
EXIT_MISSING_OUTPUT = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="render_preview.py", usage=USAGE_MESSAGE, add_help=True)
    parser.add_argument("model", nargs="?", help="The filename of the 3D model to render")
    parser.add_argument("output", nargs="?", help="The filename to save the preview image to")
    return parser


def check_args(args: argparse.Namespace) -> None:
    if not args.model:
        raise UsageError("Falta <path/to/in/3d_model>", EXIT_MISSING_MODEL)
    if not args.output:
        raise UsageError("Falta <path/to/out/preview>", EXIT_MISSING_OUTPUT)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        check_args(args)
    except UsageError as e:
        print(USAGE_MESSAGE)
        return e.exit_code

    # imports tardíos: el uso incorrecto no necesita selenium/opencv
    from previewer.config import load_settings
    from previewer.run import install_signal_handlers, run_preview

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"❌ Configuración inválida: {e}", file=sys.stderr)
        return EXIT_FAILURE

    install_signal_handlers()
    return run_preview(settings, args.model, args.output)


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        raise SystemExit(EXIT_FAILURE)
