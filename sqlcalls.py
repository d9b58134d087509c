# sqlcalls.py
"""
Ordered exec/query calls built from the command line.

Arguments always attach to the most recently declared call, so

    -query "SELECT ?" -arg 1:integer -exec "DELETE FROM t WHERE id = ?" -arg 2:integer

gives two calls with one argument each.
"""
import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlargs import BoundArgument, parse_argument
from sqlerrors import DanglingArgumentError

LIST_TABLES_SQL = "SELECT name FROM sqlite_master WHERE type='table'"


class CallKind(enum.Enum):
    EXEC = "exec"
    QUERY = "query"


@dataclass(frozen=True)
class Call:
    kind: CallKind
    statement: str
    arguments: Tuple[BoundArgument, ...] = ()


CallSequence = Tuple[Call, ...]


@dataclass
class _PendingCall:
    kind: CallKind
    statement: str
    arguments: List[BoundArgument] = field(default_factory=list)

    def freeze(self):
        return Call(self.kind, self.statement, tuple(self.arguments))


class CallSequenceBuilder:
    """Collects calls in declaration order; `current` is the call -arg attaches to."""

    def __init__(self):
        self._calls: List[_PendingCall] = []
        self._current: Optional[_PendingCall] = None
        self._frozen = False

    def __len__(self):
        return len(self._calls)

    def _check_open(self):
        if self._frozen:
            raise RuntimeError("call sequence is already frozen")

    def declare(self, kind, statement):
        self._check_open()
        statement = statement.strip()
        if not statement:
            return None
        call = _PendingCall(kind, statement)
        self._calls.append(call)
        self._current = call
        return call.freeze()

    def query(self, statement):
        return self.declare(CallKind.QUERY, statement)

    def exec(self, statement):
        return self.declare(CallKind.EXEC, statement)

    def list_tables(self):
        return self.declare(CallKind.QUERY, LIST_TABLES_SQL)

    def attach(self, bound):
        self._check_open()
        if self._current is None:
            raise DanglingArgumentError()
        self._current.arguments.append(bound)

    def add_argument(self, raw):
        """Parse an -arg spec and attach it to the current call."""
        self._check_open()
        if self._current is None:
            raise DanglingArgumentError()
        bound = parse_argument(raw)
        self.attach(bound)
        return bound

    def freeze(self) -> CallSequence:
        self._frozen = True
        return tuple(call.freeze() for call in self._calls)
