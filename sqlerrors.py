# sqlerrors.py
"""
Error types for sql3batch.

Parsing-phase errors (configuration, argument syntax/value, dangling
argument) are raised before any database work happens. Everything else is
raised while the batch transaction is open and causes a rollback.
"""


class BatchError(Exception):
    """Base class for every error the tool reports to the user."""


class ConfigurationError(BatchError):
    """Missing or blank database path, bad timeout value."""


class ArgumentSyntaxError(BatchError):
    """Malformed -arg specification."""


class UnknownArgumentType(ArgumentSyntaxError):
    def __init__(self, type_name):
        self.type_name = type_name
        super().__init__(f"unknown argument type {type_name!r}")


class ArgumentValueError(BatchError):
    """A typed value could not be converted (integer/real)."""


ArgumentValueParseError = ArgumentValueError


class DanglingArgumentError(BatchError):
    def __init__(self):
        super().__init__(
            "-arg is set before -query or -exec - can't set argument. "
            "Use like following: -query 'select ?' -arg 10:integer"
        )


class DatabaseConnectionError(BatchError):
    """The database could not be opened."""


class TransactionError(BatchError):
    """BEGIN, COMMIT or ROLLBACK failed."""


class StatementError(BatchError):
    """An exec/query call failed, including deadline interruption."""


class RenderError(BatchError):
    """Reading or printing a result row failed."""
