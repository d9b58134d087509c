# sqlbatch.py
"""
Run a frozen call sequence against SQLite inside one transaction.

Either every call succeeds and the transaction is committed once at the end,
or the first failure rolls everything back and no later call is attempted.
Output (row counts, result tables) is streamed as calls complete, so text
printed before a failure stays on screen even though its data is rolled back.
"""
import enum
import re
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from sqlcalls import CallKind
from sqlerrors import (
    DatabaseConnectionError,
    RenderError,
    StatementError,
    TransactionError,
)
from sqltable import render_table

# SQLite checks the progress handler every N virtual machine instructions
PROGRESS_INSTRUCTIONS = 1000


def open_engine(db_path):
    """
    Engine for a SQLite file with explicit BEGIN, so DDL and DML share the
    batch transaction (the sqlite3 module would otherwise only open a
    transaction before INSERT/UPDATE/DELETE).
    """
    engine = create_engine(URL.create("sqlite", database=str(db_path)), future=True)

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def sqlite_capabilities():
    """(sqlite version, compile options) of the linked SQLite library."""
    engine = create_engine("sqlite://", future=True)
    try:
        with engine.connect() as conn:
            version = conn.exec_driver_sql("SELECT sqlite_version()").scalar()
            options = conn.exec_driver_sql("PRAGMA compile_options").scalars().all()
    finally:
        engine.dispose()
    return version, options


class Deadline:
    """Wall-clock budget shared by every call of one batch."""

    def __init__(self, seconds):
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self):
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self):
        return time.monotonic() >= self._expires_at

    def check(self, what):
        if self.expired():
            raise StatementError(f"{what}: deadline of {self.seconds:g}s exceeded")


class BatchState(enum.Enum):
    NOT_STARTED = "not started"
    TRANSACTION_OPEN = "transaction open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled back"


@dataclass
class CallOutcome:
    index: int
    kind: CallKind
    statement: str
    rows_affected: Optional[int] = None
    rows_rendered: Optional[int] = None


@dataclass
class BatchReport:
    state: BatchState
    outcomes: List[CallOutcome] = field(default_factory=list)
    elapsed: float = 0.0


_SQL_TOKENS = re.compile(
    r"""
      '(?:[^']|'')*'
    | "(?:[^"]|"")*"
    | `(?:[^`]|``)*`
    | \[[^\]]*\]
    | --[^\n]*
    | /\*.*?(?:\*/|$)
    | (?P<param>\?\d*|[:@$]\w+)
    """,
    re.VERBOSE | re.DOTALL,
)


def scan_placeholders(statement):
    """
    (offset, token, index) for every parameter in the statement, numbered the
    way SQLite numbers them: bare ? takes the next free index, ?NNN is NNN,
    a named parameter keeps the index of its first appearance. String
    literals, quoted identifiers and comments are skipped.
    """
    found = []
    named = {}
    highest = 0
    for m in _SQL_TOKENS.finditer(statement):
        token = m.group("param")
        if token is None:
            continue
        if token == "?":
            highest += 1
            index = highest
        elif token[0] == "?":
            index = int(token[1:])
            highest = max(highest, index)
        elif token in named:
            index = named[token]
        else:
            highest += 1
            index = named[token] = highest
        found.append((m.start("param"), token, index))
    return found


def bind_parameters(statement, arguments):
    """
    Statement and driver parameters for one call.

    Named arguments bind by name, positional ones by their 1-based ordinal in
    the call, whatever placeholder sits at that index. When that can't be
    expressed as a plain tuple, bare ? placeholders are rewritten to ?N so
    every placeholder has a name and a dict is passed instead.
    Raises ValueError for a positional argument with no placeholder.
    """
    if not arguments:
        return statement, None
    placeholders = scan_placeholders(statement)
    if all(a.positional for a in arguments) and all(tok == "?" for _, tok, _ in placeholders):
        return statement, tuple(a.value.to_driver() for a in arguments)

    parts = []
    last = 0
    index_names = {}
    for offset, token, index in placeholders:
        if token == "?":
            parts += [statement[last:offset], f"?{index}"]
            last = offset + 1
            index_names[index] = str(index)
        else:
            index_names.setdefault(index, token[1:])
    parts.append(statement[last:])

    params = {}
    for ordinal, arg in enumerate(arguments, 1):
        if arg.positional:
            if ordinal not in index_names:
                raise ValueError(f"argument {ordinal} has no matching placeholder")
            key = index_names[ordinal]
        else:
            key = arg.name
        params[key] = arg.value.to_driver()
    return "".join(parts), params


def _driver_message(err):
    orig = getattr(err, "orig", None)
    return str(orig if orig is not None else err)


class BatchExecutor:
    def __init__(self, connection, out=None, deadline=None, verbose=False):
        self.connection = connection
        self.out = out or sys.stdout
        self.deadline = deadline
        self.verbose = verbose
        self.state = BatchState.NOT_STARTED
        self.outcomes: List[CallOutcome] = []

    def _log(self, msg):
        if self.verbose:
            print(f"[batch] {msg}", file=sys.stderr)

    def execute(self, sequence):
        if self.state is not BatchState.NOT_STARTED:
            raise RuntimeError(f"batch executor already used ({self.state.value})")
        t0 = time.monotonic()

        try:
            trans = self.connection.begin()
        except SQLAlchemyError as e:
            self.state = BatchState.ROLLED_BACK
            raise TransactionError(f"opening transaction: {_driver_message(e)}") from e
        self.state = BatchState.TRANSACTION_OPEN
        self._log(f"transaction open, {len(sequence)} call(s)")

        try:
            self._install_deadline()
            try:
                for index, call in enumerate(sequence, 1):
                    self.outcomes.append(self._run_call(index, call))
            finally:
                self._remove_deadline()
        except BaseException as e:
            self._rollback(trans, e)
            raise

        try:
            trans.commit()
        except SQLAlchemyError as e:
            self.state = BatchState.ROLLED_BACK
            self._discard_failed_commit(e)
            raise TransactionError(f"commit: {_driver_message(e)}") from e
        self.state = BatchState.COMMITTED

        elapsed = time.monotonic() - t0
        self._log(f"committed in {elapsed:.3f}s")
        return BatchReport(self.state, list(self.outcomes), elapsed)

    def _rollback(self, trans, cause):
        self._log(f"rolling back: {cause}")
        try:
            trans.rollback()
        except SQLAlchemyError as e:
            raise TransactionError(f"rollback after failure ({cause}): {_driver_message(e)}") from e
        finally:
            self.state = BatchState.ROLLED_BACK

    def _discard_failed_commit(self, cause):
        # SQLite leaves the transaction open when COMMIT fails (deferred constraints)
        self._log(f"commit failed, rolling back: {_driver_message(cause)}")
        dbapi_error = self.connection.dialect.dbapi.Error
        try:
            self._driver_connection().rollback()
        except dbapi_error as e:
            raise TransactionError(f"rollback after failed commit: {e}") from e

    def _driver_connection(self):
        return self.connection.connection.driver_connection

    def _install_deadline(self):
        if self.deadline is None:
            return
        deadline = self.deadline
        self._driver_connection().set_progress_handler(
            lambda: 1 if deadline.expired() else 0, PROGRESS_INSTRUCTIONS
        )

    def _remove_deadline(self):
        if self.deadline is not None:
            self._driver_connection().set_progress_handler(None, 0)

    def _statement_error(self, index, call, err):
        label = f"{call.kind.value} call {index} ({call.statement!r})"
        if self.deadline is not None and self.deadline.expired():
            return StatementError(f"{label}: deadline of {self.deadline.seconds:g}s exceeded")
        return StatementError(f"{label}: {_driver_message(err)}")

    def _run_call(self, index, call):
        if self.deadline is not None:
            self.deadline.check(f"{call.kind.value} call {index}")
        print(">", call.statement, file=self.out)
        t0 = time.monotonic()

        try:
            statement, params = bind_parameters(call.statement, call.arguments)
            result = self.connection.exec_driver_sql(statement, params)
        except SQLAlchemyError as e:
            raise self._statement_error(index, call, e) from e
        except ValueError as e:
            # binding/encoding errors the driver raises outside the DBAPI hierarchy
            raise self._statement_error(index, call, e) from e

        try:
            if call.kind is CallKind.EXEC:
                # pysqlite reports -1 for statements that change no rows
                rows_affected = max(result.rowcount, 0)
                print("rows affected:", rows_affected, file=self.out)
                outcome = CallOutcome(index, call.kind, call.statement, rows_affected=rows_affected)
            else:
                columns = list(result.keys()) if result.returns_rows else []
                try:
                    rendered = render_table(columns, result, self.out)
                except RenderError as e:
                    if self.deadline is not None and self.deadline.expired():
                        raise self._statement_error(index, call, e) from e
                    raise
                outcome = CallOutcome(index, call.kind, call.statement, rows_rendered=rendered)
        finally:
            result.close()

        self._log(f"call {index} done in {time.monotonic() - t0:.3f}s")
        return outcome


def run_batch(db_path, sequence, out=None, deadline=None, verbose=False):
    """Open the database, execute the whole sequence, always dispose the engine."""
    engine = open_engine(db_path)
    try:
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(f"database open {db_path}: {_driver_message(e)}") from e
        with conn:
            return BatchExecutor(conn, out=out, deadline=deadline, verbose=verbose).execute(sequence)
    finally:
        engine.dispose()
