#!/usr/bin/env python3
"""
run_batch.py

SQLite3 query and exec multitool. All -exec and -query calls run in one
transaction: either all of them are committed or none are.

Usage:
  python run_batch.py -db movies.db -list
  python run_batch.py -db movies.db \\
      -query "SELECT name FROM users WHERE id=@user_id" -arg user_id=100500:integer \\
      -exec "DELETE FROM users WHERE name like ?" -arg '%spam%'
"""
import argparse
import os
import sys

from dotenv import load_dotenv

from sqlargs import SUPPORTED_TYPES
from sqlbatch import Deadline, run_batch, sqlite_capabilities
from sqlcalls import CallSequenceBuilder
from sqlerrors import BatchError, ConfigurationError

load_dotenv()

# ==========================
# CONFIG - env overrides
# ==========================
DB_ENV = "SQL3BATCH_DB"
TIMEOUT_ENV = "SQL3BATCH_TIMEOUT"
DEFAULT_TIMEOUT = 5 * 60.0
# ==========================

HELP = """
SQLite3 query and exec multitool.

-exec and -query calls are executed on one transaction.

Example invocations:

-query "SELECT name FROM users WHERE id=@user_id" -arg user_id=100500:integer  -exec "DELETE FROM users WHERE name like ?" -arg '%spam%'

Supported -arg types: """ + ", ".join(SUPPORTED_TYPES) + "\n"

ARG_HELP = (
    "SQL argument with optional name and type. Examples: 10, count=10, 10:integer, "
    "count=10:integer, null. If name is not defined, then ordinal position of argument "
    "will be used in query. Supported types: " + ", ".join(SUPPORTED_TYPES)
)


class _QueryAction(argparse.Action):
    def __init__(self, option_strings, dest, builder=None, **kwargs):
        self.builder = builder
        super().__init__(option_strings, dest, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        self.builder.query(values)


class _ExecAction(_QueryAction):
    def __call__(self, parser, namespace, values, option_string=None):
        self.builder.exec(values)


class _ArgAction(_QueryAction):
    def __call__(self, parser, namespace, values, option_string=None):
        self.builder.add_argument(values)


class _ListAction(_QueryAction):
    def __init__(self, option_strings, dest, builder=None, **kwargs):
        super().__init__(option_strings, dest, builder=builder, nargs=0, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        self.builder.list_tables()


class _HelpAction(argparse.Action):
    """Help text lists the SQLite build options, so it is only computed on demand."""

    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        version, options = sqlite_capabilities()
        lines = [f"SQLite {version} is linked in, compiled with:"]
        lines += [f"    {opt}" for opt in options]
        parser.epilog = "\n".join(lines)
        parser.print_help()
        parser.exit()


def build_parser(builder):
    parser = argparse.ArgumentParser(
        prog="sql3batch",
        description=HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("-h", "--help", action=_HelpAction, help="show this help message and exit")
    parser.add_argument("-db", default=os.environ.get(DB_ENV, ""),
                        help=f"Database file to use (default: ${DB_ENV})")
    parser.add_argument("-query", action=_QueryAction, builder=builder, metavar="SQL",
                        help="query expressions")
    parser.add_argument("-exec", action=_ExecAction, builder=builder, metavar="SQL",
                        help="exec expressions")
    parser.add_argument("-arg", action=_ArgAction, builder=builder, metavar="SPEC", help=ARG_HELP)
    parser.add_argument("-list", action=_ListAction, builder=builder,
                        help="list tables from database")
    parser.add_argument("-timeout", type=float, default=None,
                        help=f"Seconds the whole batch may take (default: ${TIMEOUT_ENV} or {DEFAULT_TIMEOUT:g})")
    parser.add_argument("-verbose", action="store_true", help="Print timings and transaction steps to stderr")
    return parser


def resolve_timeout(value):
    if value is None:
        raw = os.environ.get(TIMEOUT_ENV, "").strip()
        if not raw:
            return DEFAULT_TIMEOUT
        try:
            value = float(raw)
        except ValueError as e:
            raise ConfigurationError(f"{TIMEOUT_ENV}={raw!r} is not a number") from e
    if value <= 0:
        raise ConfigurationError(f"timeout must be positive, got {value:g}")
    return value


def main(argv=None, out=None):
    builder = CallSequenceBuilder()
    parser = build_parser(builder)
    try:
        args = parser.parse_args(argv)
        if not args.db.strip():
            raise ConfigurationError("no database file specified")
        timeout = resolve_timeout(args.timeout)
    except ConfigurationError as e:
        parser.print_usage(sys.stderr)
        print(f"error: {e}", file=sys.stderr)
        return 2
    except BatchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    sequence = builder.freeze()
    if args.verbose:
        print(f"[batch] db={args.db} calls={len(sequence)} timeout={timeout:g}s", file=sys.stderr)

    try:
        run_batch(args.db, sequence, out=out, deadline=Deadline(timeout), verbose=args.verbose)
    except BatchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def cli():
    raise SystemExit(main())


if __name__ == "__main__":
    cli()
