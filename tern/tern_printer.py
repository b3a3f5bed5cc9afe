"""
A printer for Tern values and program nodes.

`display` produces the text `print` writes: strings print raw at the top
level and quoted inside containers. `pformat` renders values in their
literal form and program nodes as readable source, which is what error
messages quote back to the user.
"""
import collections.abc

from tern.tern_values import Array, Dictionary
from tern.tern_datatypes import (
    Literal, Variable, BinaryOp, UnaryOp, ArrayLiteral, DictLiteral, IndexExpr, Call,
    VarDecl, Assign, ExprStmt, ForEach, While, If, Break, Continue, Pass, Return,
    Function, Script,
)


class Printer:
    """Formats Tern objects into readable text."""

    def __init__(self, indent_width=4):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()
        # ids of containers currently being formatted, to cut self-references
        self._active = set()

    def display(self, obj):
        """Text of a value as `print` shows it."""
        if isinstance(obj, str):
            return obj
        return self.pformat(obj)

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Array):
            return self._pformat_array
        if isinstance(obj, collections.abc.Mapping):
            return self._pformat_dict
        if isinstance(obj, list):
            return self._pformat_block
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            Array: self._pformat_array,
            Dictionary: self._pformat_dict,
            Literal: self._pformat_literal,
            Variable: self._pformat_variable,
            BinaryOp: self._pformat_binary,
            UnaryOp: self._pformat_unary,
            ArrayLiteral: self._pformat_array_literal,
            DictLiteral: self._pformat_dict_literal,
            IndexExpr: self._pformat_index,
            Call: self._pformat_call,
            VarDecl: self._pformat_var_decl,
            Assign: self._pformat_assign,
            ExprStmt: self._pformat_expr_stmt,
            ForEach: self._pformat_for,
            While: self._pformat_while,
            If: self._pformat_if,
            Break: self._pformat_break,
            Continue: self._pformat_continue,
            Pass: lambda o, l: "pass",
            Return: self._pformat_return,
            Function: self._pformat_function,
            Script: self._pformat_script,
        }

    # --- Values ---

    def _pformat_primitive(self, obj, level):
        return str(obj)

    def _pformat_str(self, obj, level):
        escaped = obj.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
        return f'"{escaped}"'

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_none(self, obj, level):
        return 'none'

    def _pformat_container(self, obj, open_char, close_char, render_items):
        if id(obj) in self._active:
            return f"{open_char}...{close_char}"
        self._active.add(id(obj))
        try:
            return open_char + ", ".join(render_items()) + close_char
        finally:
            self._active.discard(id(obj))

    def _pformat_array(self, obj, level):
        return self._pformat_container(obj, "[", "]", lambda: [self.pformat(item, level) for item in obj.items])

    def _pformat_dict(self, obj, level):
        data = obj.data if isinstance(obj, Dictionary) else obj
        return self._pformat_container(
            obj, "{", "}",
            lambda: [f"{self.pformat(k, level)}: {self.pformat(v, level)}" for k, v in data.items()],
        )

    # --- Expressions ---

    def _operand(self, node, level):
        text = self.pformat(node, level)
        if isinstance(node, BinaryOp):
            return f"({text})"
        return text

    def _pformat_literal(self, obj, level):
        return self.pformat(obj.value, level)

    def _pformat_variable(self, obj, level):
        return obj.name

    def _pformat_binary(self, obj, level):
        return f"{self._operand(obj.left, level)} {obj.op} {self._operand(obj.right, level)}"

    def _pformat_unary(self, obj, level):
        sep = " " if obj.op == "not" else ""
        return f"{obj.op}{sep}{self._operand(obj.operand, level)}"

    def _pformat_array_literal(self, obj, level):
        return "[" + ", ".join(self.pformat(item, level) for item in obj.items) + "]"

    def _pformat_dict_literal(self, obj, level):
        pairs = [f"{self.pformat(k, level)}: {self.pformat(v, level)}" for k, v in obj.entries]
        return "{" + ", ".join(pairs) + "}"

    def _pformat_index(self, obj, level):
        return f"{self._operand(obj.container, level)}[{self.pformat(obj.key, level)}]"

    def _pformat_call(self, obj, level):
        args = ", ".join(self.pformat(a, level) for a in obj.args)
        if obj.receiver is not None:
            return f"{self._operand(obj.receiver, level)}.{obj.name}({args})"
        return f"{obj.name}({args})"

    # --- Statements ---

    def _pformat_block(self, nodes, level):
        """Formats a statement list, one statement per line, at the given level."""
        if not nodes:
            return self._indent_char * level + "pass"
        return "\n".join(self._indent_char * level + self.pformat(node, level) for node in nodes)

    def _pformat_suite(self, header, body, level):
        return f"{header}:\n{self._pformat_block(body, level + 1)}"

    def _pformat_var_decl(self, obj, level):
        if obj.value is None:
            return f"var {obj.name}"
        return f"var {obj.name} = {self.pformat(obj.value, level)}"

    def _pformat_assign(self, obj, level):
        return f"{self.pformat(obj.target, level)} {obj.op} {self.pformat(obj.value, level)}"

    def _pformat_expr_stmt(self, obj, level):
        return self.pformat(obj.expr, level)

    def _pformat_for(self, obj, level):
        names = ", ".join(obj.names)
        return self._pformat_suite(f"for {names} in {self.pformat(obj.iterable, level)}", obj.body, level)

    def _pformat_while(self, obj, level):
        return self._pformat_suite(f"while {self.pformat(obj.cond, level)}", obj.body, level)

    def _pformat_if(self, obj, level, keyword="if"):
        out = self._pformat_suite(f"{keyword} {self.pformat(obj.cond, level)}", obj.body, level)
        orelse = obj.orelse
        if not orelse:
            return out
        indent = self._indent_char * level
        # A lone nested If in the else branch reads as elif
        if len(orelse) == 1 and isinstance(orelse[0], If):
            return f"{out}\n{indent}{self._pformat_if(orelse[0], level, keyword='elif')}"
        return f"{out}\n{indent}{self._pformat_suite('else', orelse, level)}"

    def _pformat_break(self, obj, level):
        return f"break {obj.levels}" if obj.levels else "break"

    def _pformat_continue(self, obj, level):
        return f"continue {obj.levels}" if obj.levels else "continue"

    def _pformat_return(self, obj, level):
        if obj.value is None:
            return "return"
        return f"return {self.pformat(obj.value, level)}"

    def _pformat_function(self, obj, level):
        return self._pformat_suite(f"fn {obj.name}({', '.join(obj.params)})", obj.body, level)

    def _pformat_script(self, obj, level):
        parts = [f"var {name}" for name in obj.variables]
        parts.extend(self.pformat(fn, level) for fn in obj.functions.values())
        return "\n".join(parts)
