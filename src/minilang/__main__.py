#!/usr/bin/env python3
"""
Command-line runner for minilang scripts.

Usage:
    python -m minilang FILE [--config PATH] [--check] [--dump-ast] [--log-level LEVEL]

Examples:
    # Run a script and print its final value
    python -m minilang examples/factorial.ml

    # Only check that the script lexes and parses
    python -m minilang examples/factorial.ml --check

    # Show the parsed tree
    python -m minilang examples/factorial.ml --dump-ast

    # Use a configuration file with verbose logging
    python -m minilang script.ml --config minilang.yaml --log-level DEBUG
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minilang",
        description="Run a minilang script",
    )
    parser.add_argument("file", nargs="?", help="Script file to run")
    parser.add_argument("--config", help="YAML configuration file (default: $MINILANG_CONFIG)")
    parser.add_argument("--check", action="store_true", help="Only lex and parse the script")
    parser.add_argument("--dump-ast", action="store_true", help="Print the parsed syntax tree instead of running")
    parser.add_argument("--log-level", help="Logging level (overrides the configuration)")
    return parser


def cmd_check(program, source_path: Path) -> int:
    """Report a successful parse."""
    print(f"OK: {source_path.name} - {len(program.body)} statement(s)")
    return 0


def cmd_run(args, config) -> int:
    """Lex, parse and run a script file."""
    from . import lex, parse_program, print_ast
    from .errors import ScriptError
    from .runtime import (
        Interpreter, ModuleLoader, create_default_environment, release_environment, format_value,
    )
    from .runtime.interpreter import recursion_guard

    source_path = Path(args.file)
    try:
        source = source_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: cannot read {source_path}: {e}", file=sys.stderr)
        return 1

    filename = str(source_path)
    env = None
    try:
        with recursion_guard(Interpreter.max_call_depth):
            program = parse_program(lex(source, filename), filename, source)
        if args.dump_ast:
            print_ast(program)
        if args.check:
            return cmd_check(program, source_path)
        if args.dump_ast:
            return 0

        env = create_default_environment(config)
        interpreter = Interpreter(env, ModuleLoader(config.module_root), source, filename)
        value = interpreter.run_program(program)
    except ScriptError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1
    finally:
        if env is not None:
            release_environment(env)

    print(format_value(value))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    from .config import ConfigError, load_config

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.file:
        parser.print_usage(sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    level = (args.log_level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )

    return cmd_run(args, config)


if __name__ == "__main__":
    sys.exit(main())
