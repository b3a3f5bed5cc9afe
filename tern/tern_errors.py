"""
Error taxonomy for the Tern runtime.

Every evaluation fault is a TernError carrying its kind, the operands or
container involved, and (once it has propagated through the evaluator) the
program node being evaluated when it was raised. Each kind also derives from
the closest Python builtin so host code can catch e.g. IndexError.
"""
from typing import Any, Optional


class TernError(Exception):
    """Base class for all evaluation-time faults."""
    kind = "TernError"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context
        # Innermost node being evaluated; filled in by the Evaluator.
        self.node: Optional[Any] = None

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"<{self.kind} {self.message!r}>"


class IndexOutOfRange(TernError, IndexError):
    kind = "IndexOutOfRange"


class KeyNotFound(TernError, KeyError):
    kind = "KeyNotFound"


class TypeMismatch(TernError, TypeError):
    kind = "TypeMismatch"


class NotIndexable(TernError, TypeError):
    kind = "NotIndexable"


class UnboundVariable(TernError, NameError):
    kind = "UnboundVariable"


class UndefinedFunction(TernError, NameError):
    kind = "UndefinedFunction"


class ArgumentCount(TernError, TypeError):
    kind = "ArgumentCount"


class DivisionByZero(TernError, ZeroDivisionError):
    kind = "DivisionByZero"


class MutationDuringIteration(TernError, RuntimeError):
    """A container changed length while a for-each loop was walking it."""
    kind = "MutationDuringIteration"


class LoopLimitExceeded(TernError, RuntimeError):
    kind = "LoopLimitExceeded"


class ProgramFormatError(ValueError):
    """A program tree (or its serialized document) is malformed.

    Raised before evaluation starts; never raised by the evaluator for a
    well-formed tree, except for stray break/continue in hand-built trees.
    """
    def __init__(self, message: str, loc: Optional[dict] = None):
        super().__init__(message)
        self.loc = loc
