"""
Transforms a raw program tree (tagged mappings from an external parser) into
the semantic node types of tern_datatypes.

Raw nodes look like `{"tag": "binary", "op": "+", "children": [...],
"line": 3, "col": 9}`. Location keys are optional and are copied onto the
resulting node as `loc`.
"""
from typing import Any, List

from tern.tern_errors import ProgramFormatError
from tern.tern_values import BINARY_OPERATORS, UNARY_OPERATORS
from tern.tern_datatypes import (
    Node, Literal, Variable, BinaryOp, UnaryOp, ArrayLiteral, DictLiteral, IndexExpr, Call,
    VarDecl, Assign, ExprStmt, ForEach, While, If, Break, Continue, Pass, Return,
    Function, Script, ASSIGN_OPERATORS, LOGICAL_OPERATORS,
)


def _parse_int(text: str) -> int:
    """Parses an integer literal; accepts 0x/0o/0b prefixes and '_' separators."""
    s = text.strip()
    try:
        return int(s, 0)
    except ValueError:
        # int(..., 0) rejects leading zeros such as "007"
        return int(s, 10)


class TernTransformer:
    def __init__(self):
        # Number of enclosing loops of the statement being transformed
        self._loop_depth = 0

    def _attach_loc(self, obj, node):
        line = node.get('line'); col = node.get('col')
        if line is not None:
            obj.loc = {'line': line, 'col': col, 'tag': node.get('tag')}
        return obj

    def _loc(self, node):
        if isinstance(node, dict) and node.get('line') is not None:
            return {'line': node.get('line'), 'col': node.get('col'), 'tag': node.get('tag')}
        return None

    def _fail(self, message, node):
        loc = self._loc(node)
        if loc:
            message = f"{message} (line {loc['line']}, col {loc['col']})"
        raise ProgramFormatError(message, loc)

    def _require(self, node, key):
        if key not in node:
            self._fail(f"'{node.get('tag')}' node is missing '{key}'", node)
        return node[key]

    def _children(self, node, count=None):
        children = node.get('children', [])
        if not isinstance(children, list):
            self._fail(f"'{node.get('tag')}' children must be a list", node)
        if count is not None and len(children) != count:
            self._fail(f"'{node.get('tag')}' expects {count} children, got {len(children)}", node)
        return children

    def _name(self, node, key):
        name = self._require(node, key)
        if not isinstance(name, str) or not name:
            self._fail(f"'{node.get('tag')}' {key} must be a non-empty string", node)
        return name

    # --- Entry points ---

    def transform(self, node: Any) -> Script:
        """Transforms a whole program document.

        Accepts a `script` node, a single `fn` node, or a bare list of
        statements which becomes the body of `main`.
        """
        if isinstance(node, list):
            return Script(functions={'main': Function('main', [], self.transform_block(node))})
        if not isinstance(node, dict):
            raise ProgramFormatError(f"program must be a mapping or a list, not {type(node).__name__}")
        match node.get('tag'):
            case 'script':
                return self._attach_loc(self._transform_script(node), node)
            case 'fn':
                fn = self._transform_function(node)
                return Script(functions={fn.name: fn})
            case _:
                self._fail(f"expected a 'script' or 'fn' node, got {node.get('tag')!r}", node)

    def _transform_script(self, node) -> Script:
        variables = node.get('variables', [])
        if not isinstance(variables, list) or not all(isinstance(v, str) for v in variables):
            self._fail("script variables must be a list of names", node)
        if len(set(variables)) != len(variables):
            self._fail("duplicate script variable", node)
        functions = {}
        fn_nodes = node.get('functions', [])
        if not isinstance(fn_nodes, list):
            self._fail("script functions must be a list of 'fn' nodes", node)
        for fn_node in fn_nodes:
            fn = self._transform_function(fn_node)
            if fn.name in functions:
                self._fail(f"duplicate function '{fn.name}'", fn_node)
            functions[fn.name] = fn
        return Script(functions=functions, variables=list(variables))

    def _transform_function(self, node) -> Function:
        if not isinstance(node, dict) or node.get('tag') != 'fn':
            self._fail("expected a 'fn' node", node if isinstance(node, dict) else {})
        params = node.get('params', [])
        if not isinstance(params, list) or not all(isinstance(p, str) for p in params):
            self._fail("fn params must be a list of names", node)
        self._loop_depth = 0
        fn = Function(self._name(node, 'name'), list(params), self.transform_block(node.get('body', [])))
        return self._attach_loc(fn, node)

    def transform_block(self, nodes: Any) -> List[Node]:
        if not isinstance(nodes, list):
            self._fail("a block must be a list of statements", nodes if isinstance(nodes, dict) else {})
        return [self.transform_statement(n) for n in nodes]

    def _loop_body(self, nodes) -> List[Node]:
        self._loop_depth += 1
        try:
            return self.transform_block(nodes)
        finally:
            self._loop_depth -= 1

    # --- Statements ---

    def transform_statement(self, node: Any) -> Node:
        if not isinstance(node, dict) or 'tag' not in node:
            raise ProgramFormatError(f"statement must be a tagged mapping, got {node!r}")
        tag = node['tag']
        match tag:
            case 'var':
                children = self._children(node)
                if len(children) > 1:
                    self._fail("'var' takes at most one initializer", node)
                value = self.transform_expression(children[0]) if children else None
                stmt = VarDecl(self._name(node, 'name'), value)
            case 'assign':
                op = node.get('op', '=')
                if not isinstance(op, str) or op not in ASSIGN_OPERATORS:
                    self._fail(f"unknown assignment operator {op!r}", node)
                target, value = self._children(node, 2)
                target = self.transform_expression(target)
                if not isinstance(target, (Variable, IndexExpr)):
                    self._fail("assignment target must be a name or an index", node)
                stmt = Assign(target, self.transform_expression(value), op)
            case 'expr':
                (expr,) = self._children(node, 1)
                stmt = ExprStmt(self.transform_expression(expr))
            case 'for':
                names = self._require(node, 'vars')
                if (not isinstance(names, list) or len(names) not in (1, 2)
                        or not all(isinstance(n, str) for n in names)):
                    self._fail("'for' takes one or two loop variable names", node)
                iterable = self.transform_expression(self._require(node, 'iterable'))
                stmt = ForEach(list(names), iterable, self._loop_body(node.get('body', [])))
            case 'while':
                cond = self.transform_expression(self._require(node, 'cond'))
                stmt = While(cond, self._loop_body(node.get('body', [])))
            case 'if':
                cond = self.transform_expression(self._require(node, 'cond'))
                body = self.transform_block(node.get('body', []))
                orelse = node.get('else')
                stmt = If(cond, body, self.transform_block(orelse) if orelse is not None else None)
            case 'break' | 'continue':
                levels = node.get('levels', 0)
                if isinstance(levels, bool) or not isinstance(levels, int) or levels < 0:
                    self._fail(f"'{tag}' levels must be a non-negative int", node)
                if levels >= self._loop_depth:
                    self._fail(f"'{tag}' outside of a loop", node)
                stmt = Break(levels) if tag == 'break' else Continue(levels)
            case 'return':
                children = self._children(node)
                if len(children) > 1:
                    self._fail("'return' takes at most one value", node)
                stmt = Return(self.transform_expression(children[0]) if children else None)
            case 'pass':
                stmt = Pass()
            case _:
                # A bare expression in statement position
                stmt = ExprStmt(self.transform_expression(node))
        return self._attach_loc(stmt, node)

    # --- Expressions ---

    def transform_expression(self, node: Any) -> Node:
        if not isinstance(node, dict) or 'tag' not in node:
            raise ProgramFormatError(f"expression must be a tagged mapping, got {node!r}")
        tag = node['tag']
        match tag:
            case 'int':
                value = node.get('value', node.get('text'))
                if isinstance(value, str):
                    try:
                        value = _parse_int(value)
                    except ValueError:
                        self._fail(f"not a number: {value!r}", node)
                if isinstance(value, bool) or not isinstance(value, int):
                    self._fail(f"int literal expected, got {value!r}", node)
                expr = Literal(value)
            case 'string':
                value = node.get('value', node.get('text'))
                if not isinstance(value, str):
                    self._fail(f"string literal expected, got {value!r}", node)
                expr = Literal(value)
            case 'bool':
                value = node.get('value', node.get('text'))
                if value in ('true', 'false'):
                    value = value == 'true'
                if not isinstance(value, bool):
                    self._fail(f"bool literal expected, got {value!r}", node)
                expr = Literal(value)
            case 'none':
                expr = Literal(None)
            case 'name':
                expr = Variable(self._name(node, 'text'))
            case 'binary':
                op = self._require(node, 'op')
                if not isinstance(op, str) or (op not in BINARY_OPERATORS and op not in LOGICAL_OPERATORS):
                    self._fail(f"unknown binary operator {op!r}", node)
                left, right = self._children(node, 2)
                expr = BinaryOp(op, self.transform_expression(left), self.transform_expression(right))
            case 'unary':
                op = self._require(node, 'op')
                if not isinstance(op, str) or op not in UNARY_OPERATORS:
                    self._fail(f"unknown unary operator {op!r}", node)
                (operand,) = self._children(node, 1)
                expr = UnaryOp(op, self.transform_expression(operand))
            case 'array':
                expr = ArrayLiteral([self.transform_expression(c) for c in self._children(node)])
            case 'dict':
                entries = []
                for pair in self._children(node):
                    if not isinstance(pair, dict) or pair.get('tag') != 'pair':
                        self._fail("dict children must be 'pair' nodes", node)
                    key, value = self._children(pair, 2)
                    entries.append((self.transform_expression(key), self.transform_expression(value)))
                expr = DictLiteral(entries)
            case 'index':
                container, key = self._children(node, 2)
                expr = IndexExpr(self.transform_expression(container), self.transform_expression(key))
            case 'call':
                receiver = node.get('receiver')
                expr = Call(
                    self._name(node, 'name'),
                    [self.transform_expression(c) for c in self._children(node)],
                    self.transform_expression(receiver) if receiver is not None else None,
                )
            case _:
                self._fail(f"unknown expression tag {tag!r}", node)
        return self._attach_loc(expr, node)
