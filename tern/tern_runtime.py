# tern_runtime.py

import os
import inspect
from dataclasses import dataclass, field
from typing import Any, List, Optional, Literal, Dict

from tern.tern_transformer import TernTransformer
from tern.tern_interpreter import Evaluator, DEFAULT_MAX_LOOP_ITERS
from tern.tern_datatypes import Scope, Node, Function, Script
from tern.tern_errors import TernError, ProgramFormatError
from tern.tern_printer import Printer
from tern.tern_serialize import deserialize
from tern.tern_values import Array, Dictionary, kind_of, call_method, to_display_text


def tern_api_method(func):
    """A decorator to explicitly mark host methods as callable from Tern."""
    func._is_tern_api = True
    return func


# ===================================================================
# Standard library
# ===================================================================

class StdLib:
    """Python implementations of the Tern primitives.

    Every `_name` method is bound into the root scope as `name`.
    """
    def __init__(self, evaluator):
        self.evaluator = evaluator

    def _print(self, *values):
        text = "".join(to_display_text(v) for v in values)
        self.evaluator.write_output(text)

    def _len(self, value):
        return call_method(value, "len", [])

    def _str(self, value):
        return to_display_text(value)

    def _typeof(self, value):
        return kind_of(value).value


# ===================================================================
# Configuration
# ===================================================================

def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class RunnerConfig:
    """Settings for a ScriptRunner."""
    entry: str = "main"
    max_loop_iters: int = DEFAULT_MAX_LOOP_ITERS
    debug: bool = False

    @classmethod
    def from_env(cls, **overrides) -> 'RunnerConfig':
        """Reads TERN_ENTRY, TERN_MAX_LOOP_ITERS and TERN_DEBUG; explicit overrides win."""
        config = cls(
            entry=os.environ.get("TERN_ENTRY") or "main",
            max_loop_iters=_env_int("TERN_MAX_LOOP_ITERS", DEFAULT_MAX_LOOP_ITERS),
            debug=bool(os.environ.get("TERN_DEBUG")),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        return config


# ===================================================================
# Running scripts
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Dict] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg

    @property
    def output(self) -> List[str]:
        """Lines printed to stdout, in order."""
        return [e['message'] for e in self.side_effects if 'stdout' in e.get('topics', [])]


class ScriptRunner:
    """Transforms and executes Tern programs."""

    def __init__(self, host_object: Optional[Any] = None, stdout=None, config: Optional[RunnerConfig] = None):
        self.host_object = host_object
        self.config = config or RunnerConfig.from_env()
        self.transformer = TernTransformer()
        # Each runner has its own evaluator, root scope and side effects
        self.evaluator = Evaluator(
            max_loop_iters=self.config.max_loop_iters,
            debug=self.config.debug,
            echo=stdout,
        )
        self.root_scope = Scope()

        stdlib = StdLib(self.evaluator)
        for name, member in inspect.getmembers(stdlib):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                self.root_scope[name[1:]] = member
        # Track which host API names we have bound into the root scope
        self._host_api_names: set[str] = set()

    def load(self, program: Any) -> Script:
        """Accepts a Script, a node document, or document text and returns a Script."""
        match program:
            case Script():
                return program
            case Function():
                return Script(functions={program.name: program})
            case str() | bytes() | bytearray():
                document = deserialize(program)
            case _:
                document = program
        return self.transformer.transform(document)

    def _bind_host_api_methods(self):
        """Bind @tern_api_method methods of the host into the root scope."""
        for n in self._host_api_names:
            self.root_scope.bindings.pop(n, None)
        self._host_api_names = set()

        host = self.host_object
        if host is None:
            return
        for name, member in inspect.getmembers(host):
            if not callable(member):
                continue
            # Decorator may mark the bound method or the underlying function
            is_api = getattr(member, "_is_tern_api", False)
            if not is_api:
                func = getattr(member, "__func__", None)
                if func is not None:
                    is_api = getattr(func, "_is_tern_api", False)
            if not is_api:
                continue
            self.root_scope[name] = member
            self._host_api_names.add(name)

    def _error_result(self, msg: str, token: Optional[Dict]) -> ExecutionResult:
        self.evaluator.emit('stderr', msg)
        return ExecutionResult(
            status='error',
            error_message=msg,
            error_token=token,
            side_effects=self.evaluator.side_effects,
        )

    def handle_script(self, program: Any, entry: Optional[str] = None, args=()) -> ExecutionResult:
        """The main entry point to execute a program."""
        # Fresh side effects and call stack for each run
        self.evaluator.side_effects = []
        self.evaluator.call_stack.clear()
        self.evaluator.current_node = None
        self._bind_host_api_methods()

        # 1. Load and transform
        try:
            script = self.load(program)
        except ProgramFormatError as e:
            return self._error_result(f"ProgramFormatError: {e}", e.loc)

        # 2. Evaluate
        try:
            value = self.evaluator.run_script(script, self.root_scope, entry or self.config.entry, args)
        except Exception as e:
            node = getattr(e, 'node', None) or self.evaluator.current_node
            msg, token = self._format_runtime_error(e, node)
            return self._error_result(msg, token)

        return ExecutionResult(
            status='success',
            value=value,
            side_effects=self.evaluator.side_effects,
        )

    def _format_runtime_error(self, e, node) -> tuple[str, Optional[dict]]:
        match e:
            case TernError():
                msg = f"{e.kind}: {e.message}"
            case ProgramFormatError():
                msg = f"ProgramFormatError: {e}"
            case RecursionError():
                msg = "RecursionError: maximum call depth exceeded"
            case _:
                msg = f"InternalError: {type(e).__name__}: {e}"

        token = None
        if isinstance(node, Node):
            msg = f"{msg}\n{Printer().pformat(node)}"
            loc = node.loc
            if loc and loc.get('line') is not None:
                line = loc.get('line'); col = loc.get('col')
                token = {'line': line, 'col': col, 'tag': loc.get('tag')}
                msg = f"{msg}\n(line {line}, col {col})"

        # Append Tern stacktrace if available
        st = self._format_stacktrace()
        if st:
            msg += "\n" + st

        return msg, token

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        pf = Printer().pformat

        def fmt(arg):
            match arg:
                case Array():
                    return f"#[{len(arg)}]"
                case Dictionary():
                    return "#{...}"
                case Function():
                    return f"fn {arg.name}"
                case _ if callable(arg):
                    return getattr(arg, '__name__', None) or "<callable>"
                case _:
                    return pf(arg)

        frames = []
        for frame in stack:
            name = frame.get('name') or '<call>'
            args_s = " ".join(fmt(a) for a in frame.get('args') or [])
            frame_str = f"({name}"
            if args_s:
                frame_str += f" {args_s}"
            frame_str += ")"
            frames.append(frame_str)

        return "Tern stacktrace: " + " ".join(frames)
