"""
The core Tern interpreter: the Evaluator.

Statements execute sequentially in a chain of Scopes. Control flow
(`break`, `continue`, `return`) travels back up through the block runner as
Flow signals rather than exceptions; every runtime fault is a TernError that
propagates to the caller with the innermost node attached.
"""
import inspect
import os
import sys
from typing import Any, List, Optional

from tern.tern_datatypes import (
    Scope, Node, Literal, Variable, BinaryOp, UnaryOp, ArrayLiteral, DictLiteral, IndexExpr, Call,
    VarDecl, Assign, ExprStmt, ForEach, While, If, Break, Continue, Pass, Return, Function, Script,
)
from tern.tern_errors import (
    TernError, TypeMismatch, NotIndexable, UndefinedFunction, ArgumentCount,
    LoopLimitExceeded, ProgramFormatError,
)
from tern.tern_values import (
    Array, Dictionary, Kind, CONTAINER_KINDS, BINARY_OPERATORS, UNARY_OPERATORS,
    kind_of, index, index_assign, iterate, call_method,
)


DEFAULT_MAX_LOOP_ITERS = 100000


class Flow:
    """A control-flow signal produced by break, continue or return."""
    __slots__ = ('kind', 'levels', 'value')

    def __init__(self, kind: str, levels: int = 0, value: Any = None):
        self.kind = kind
        self.levels = levels
        self.value = value

    def __repr__(self):
        return f"<Flow {self.kind} levels={self.levels}>"


# Helpers: identify and unwrap control-flow signals
def is_return(x) -> bool:
    return isinstance(x, Flow) and x.kind == 'return'


def unwrap_return(x):
    return x.value if is_return(x) else x


class Evaluator:
    """The Tern execution engine."""

    def __init__(self, max_loop_iters: int = DEFAULT_MAX_LOOP_ITERS, debug: bool = False, echo=None):
        self.side_effects: List[Any] = []
        self.call_stack = []
        self.current_node = None
        self.max_loop_iters = max_loop_iters
        self.debug = debug
        # Optional text stream that print output is also written to
        self.echo = echo

    # --- Diagnostics and side effects ---

    def _dbg(self, *parts):
        if self.debug or os.environ.get("TERN_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _push_frame(self, name, func, args, call_site_node):
        loc = getattr(call_site_node, 'loc', None)
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': loc,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def emit(self, topic: str, message: str):
        """Generates a side-effect event for the host application."""
        event = {"topics": [topic], "message": message}
        self.side_effects.append(event)
        return event

    def write_output(self, text: str):
        """Records one line of program output and echoes it when a stream is set."""
        self.emit("stdout", text)
        if self.echo is not None:
            self.echo.write(text + "\n")
            flush = getattr(self.echo, "flush", None)
            if flush is not None:
                flush()

    # --- Entry points ---

    def run_script(self, script: Script, root_scope: Scope, entry: str = "main", args=()) -> Any:
        """Runs entry with the script's variables and functions bound in a fresh
        scope under root_scope, so a run never rebinds the primitives.
        """
        script_scope = Scope(parent=root_scope)
        for name in script.variables:
            script_scope.declare(name, None)
        for name, fn in script.functions.items():
            script_scope.declare(name, fn)
        fn = script.functions.get(entry)
        if fn is None:
            raise UndefinedFunction(f"entry function '{entry}' is not defined", name=entry)
        self._dbg("run_script", entry, "functions", list(script.functions))
        return self.run_function(fn, list(args), script_scope, call_site=fn)

    def run_function(self, fn: Function, args: List[Any], scope: Scope, call_site: Optional[Node] = None) -> Any:
        if len(args) != len(fn.params):
            raise ArgumentCount(
                f"{fn.name}() expects {len(fn.params)} argument(s), got {len(args)}",
                function=fn.name, args=args,
            )
        fn_scope = Scope(parent=scope)
        for param, value in zip(fn.params, args):
            self.declare(param, value, fn_scope)
        self._push_frame(fn.name, fn, args, call_site)
        flow = self.exec_block(fn.body, fn_scope)
        if flow is not None and not is_return(flow):
            raise ProgramFormatError(f"'{flow.kind}' outside of a loop in {fn.name}()")
        self._pop_frame()
        return unwrap_return(flow)

    # --- Statements ---

    def exec_block(self, statements: List[Node], scope: Scope) -> Optional[Flow]:
        """Runs statements in order; stops at the first control-flow signal."""
        for stmt in statements:
            flow = self.exec_statement(stmt, scope)
            if flow is not None:
                return flow
        return None

    def exec_statement(self, stmt: Node, scope: Scope) -> Optional[Flow]:
        self.current_node = stmt
        try:
            return self._exec(stmt, scope)
        except TernError as e:
            if e.node is None:
                e.node = stmt
            raise

    def _exec(self, stmt: Node, scope: Scope) -> Optional[Flow]:
        match stmt:
            case VarDecl(name=name, value=value_expr):
                value = self.evaluate(value_expr, scope) if value_expr is not None else None
                self.declare(name, value, scope)
            case Assign(target=IndexExpr(container=container_expr, key=key_expr), value=value_expr, op=op):
                self.assign_indexed(container_expr, key_expr, value_expr, scope, op)
            case Assign(target=Variable(name=name), value=value_expr, op=op):
                value = self.evaluate(value_expr, scope)
                if op != "=":
                    value = BINARY_OPERATORS[op[:-1]](scope[name], value)
                kind_of(value)
                scope.assign(name, value)
            case ExprStmt(expr=expr):
                self.evaluate(expr, scope)
            case ForEach(names=names, iterable=iterable, body=body):
                container = self.evaluate(iterable, scope)
                return self.run_for_each(names, container, body, scope)
            case While(cond=cond, body=body):
                return self._run_while(cond, body, scope)
            case If(cond=cond, body=body, orelse=orelse):
                if self._condition(cond, scope):
                    return self.exec_block(body, Scope(parent=scope))
                if orelse:
                    return self.exec_block(orelse, Scope(parent=scope))
            case Break(levels=levels):
                return Flow('break', levels)
            case Continue(levels=levels):
                return Flow('continue', levels)
            case Return(value=value_expr):
                value = self.evaluate(value_expr, scope) if value_expr is not None else None
                return Flow('return', value=value)
            case Pass():
                pass
            case _:
                raise ProgramFormatError(f"not a statement: {type(stmt).__name__}")
        return None

    def declare(self, name: str, value: Any, scope: Scope):
        """Binds name in scope (shadowing outer bindings); `var x` binds none."""
        kind_of(value)
        scope.declare(name, value)

    def assign_indexed(self, container_expr: Node, key_expr: Node, value_expr: Node,
                       scope: Scope, op: str = "="):
        """Evaluates container, key and value (in that order) and writes container[key].

        Compound operators read the current entry, combine, and write back; the
        container and key expressions are evaluated only once.
        """
        container = self.evaluate(container_expr, scope)
        key = self.evaluate(key_expr, scope)
        value = self.evaluate(value_expr, scope)
        if kind_of(container) not in CONTAINER_KINDS:
            raise NotIndexable(
                f"{kind_of(container).value} does not support index assignment",
                container=container, key=key,
            )
        if op != "=":
            value = BINARY_OPERATORS[op[:-1]](index(container, key), value)
        index_assign(container, key, value)

    def _loop_exit(self, flow: Flow):
        """Translates a signal leaving one loop body.

        Returns (stop, propagate): whether the loop must stop, and the signal
        (if any) to hand on to the enclosing block.
        """
        if is_return(flow):
            return True, flow
        if flow.levels > 0:
            return True, Flow(flow.kind, flow.levels - 1)
        return flow.kind == 'break', None

    def run_for_each(self, names: List[str], container: Any, body: List[Node], scope: Scope) -> Optional[Flow]:
        """Runs body once per element of container.

        Dictionaries bind the key (and the value when two names are given);
        every other iterable binds only the element.
        """
        kind = kind_of(container)
        if len(names) == 2 and kind is not Kind.DICTIONARY:
            raise TypeMismatch(
                f"two loop variables need a dictionary, not {kind.value}", container=container
            )
        for key, value in iterate(container):
            iteration_scope = Scope(parent=scope)
            if kind is Kind.DICTIONARY:
                iteration_scope.declare(names[0], key)
                if len(names) == 2:
                    iteration_scope.declare(names[1], value)
            else:
                iteration_scope.declare(names[0], value)
            flow = self.exec_block(body, iteration_scope)
            if flow is not None:
                stop, propagate = self._loop_exit(flow)
                if stop:
                    return propagate
        return None

    def _run_while(self, cond: Node, body: List[Node], scope: Scope) -> Optional[Flow]:
        iterations = 0
        while self._condition(cond, scope):
            iterations += 1
            if iterations > self.max_loop_iters:
                raise LoopLimitExceeded(f"while loop exceeded {self.max_loop_iters} iterations")
            flow = self.exec_block(body, Scope(parent=scope))
            if flow is not None:
                stop, propagate = self._loop_exit(flow)
                if stop:
                    return propagate
        return None

    def _condition(self, cond: Node, scope: Scope) -> bool:
        value = self.evaluate(cond, scope)
        if kind_of(value) is not Kind.BOOL:
            raise TypeMismatch(f"condition must be a bool, not {kind_of(value).value}", operand=value)
        return value

    # --- Expressions ---

    def evaluate(self, node: Node, scope: Scope) -> Any:
        """Evaluates an expression node to a value."""
        self.current_node = node
        try:
            return self._eval(node, scope)
        except TernError as e:
            if e.node is None:
                e.node = node
            raise

    eval = evaluate

    def _eval(self, node: Node, scope: Scope) -> Any:
        match node:
            case Literal(value=value):
                return value
            case Variable(name=name):
                return scope[name]
            case BinaryOp(op='and' | 'or' as op, left=left, right=right):
                return self._logical(op, left, right, scope)
            case BinaryOp(op=op, left=left, right=right):
                lhs = self.evaluate(left, scope)
                rhs = self.evaluate(right, scope)
                return BINARY_OPERATORS[op](lhs, rhs)
            case UnaryOp(op=op, operand=operand):
                return UNARY_OPERATORS[op](self.evaluate(operand, scope))
            case ArrayLiteral(items=items):
                return Array(self.evaluate(item, scope) for item in items)
            case DictLiteral(entries=entries):
                result = Dictionary()
                for key_expr, value_expr in entries:
                    key = self.evaluate(key_expr, scope)
                    result[key] = self.evaluate(value_expr, scope)
                return result
            case IndexExpr(container=container_expr, key=key_expr):
                container = self.evaluate(container_expr, scope)
                return index(container, self.evaluate(key_expr, scope))
            case Call(name=name, args=arg_nodes, receiver=None):
                args = [self.evaluate(a, scope) for a in arg_nodes]
                if name not in scope:
                    raise UndefinedFunction(f"'{name}' is not defined", name=name)
                owner = scope.find_owner(name)
                return self.call(name, owner.bindings[name], args, owner, node)
            case Call(name=name, args=arg_nodes, receiver=receiver):
                recv = self.evaluate(receiver, scope)
                args = [self.evaluate(a, scope) for a in arg_nodes]
                self._dbg("method", kind_of(recv).value, name, "argc", len(args))
                return call_method(recv, name, args)
            case _:
                raise ProgramFormatError(f"not an expression: {type(node).__name__}")

    def _logical(self, op: str, left: Node, right: Node, scope: Scope) -> bool:
        lhs = self.evaluate(left, scope)
        if kind_of(lhs) is not Kind.BOOL:
            raise TypeMismatch(f"'{op}' expects bool operands, not {kind_of(lhs).value}", op=op, lhs=lhs)
        # Short-circuit
        if (op == 'and' and not lhs) or (op == 'or' and lhs):
            return lhs
        rhs = self.evaluate(right, scope)
        if kind_of(rhs) is not Kind.BOOL:
            raise TypeMismatch(f"'{op}' expects bool operands, not {kind_of(rhs).value}", op=op, rhs=rhs)
        return rhs

    def call(self, name: str, func: Any, args: List[Any], scope: Scope, call_site: Optional[Node] = None) -> Any:
        """Calls a script function or a bound Python primitive."""
        self._dbg("Evaluator.call", name, type(func).__name__, "argc", len(args))
        if isinstance(func, Function):
            return self.run_function(func, args, scope, call_site=call_site)
        if not callable(func):
            raise TypeMismatch(f"'{name}' is not callable", name=name, operand=func)
        try:
            inspect.signature(func).bind(*args)
        except TypeError:
            raise ArgumentCount(f"{name}() got {len(args)} argument(s)", name=name, args=args) from None
        except ValueError:
            # No introspectable signature (some builtins); let the call decide
            pass
        self._push_frame(name, func, args, call_site)
        result = func(*args)
        self._pop_frame()
        return result
