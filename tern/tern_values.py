"""
Runtime values for the Tern language.

Primitives are plain Python objects (None, bool, int, str). Containers are
Array and Dictionary, which are shared by reference: binding a container to
a second variable aliases it, the same way Python lists and dicts behave.

All coercion and operator rules live here so that the evaluator never has to
inspect Python types itself; `kind_of` is the single classifier.
"""
import collections.abc
from collections import UserDict
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Tuple

from tern.tern_errors import (
    IndexOutOfRange, KeyNotFound, TypeMismatch, NotIndexable,
    UndefinedFunction, ArgumentCount, DivisionByZero, MutationDuringIteration,
)


class Kind(Enum):
    NONE = "none"
    BOOL = "bool"
    INT = "int"
    STRING = "string"
    ARRAY = "array"
    DICTIONARY = "dictionary"


CONTAINER_KINDS = (Kind.ARRAY, Kind.DICTIONARY)
KEY_KINDS = (Kind.INT, Kind.STRING)


# =================================================================
# Containers
# =================================================================

class Array(collections.abc.MutableSequence):
    """An ordered, growable sequence indexed from 0 to len-1.

    Index access never wraps around and never grows the array: negative or
    too-large indices raise IndexOutOfRange. `version` is bumped on every
    change in length so that iteration can detect it.
    """
    def __init__(self, items=()):
        self.items: List[Any] = list(items)
        self.version = 0

    def _check_index(self, index) -> int:
        if kind_of(index) is not Kind.INT:
            raise TypeMismatch(
                f"array index must be an int, not {kind_of(index).value}",
                container=self, key=index,
            )
        if not 0 <= index < len(self.items):
            raise IndexOutOfRange(
                f"array index {index} out of range for length {len(self.items)}",
                container=self, key=index,
            )
        return index

    def __getitem__(self, index):
        return self.items[self._check_index(index)]

    def __setitem__(self, index, value):
        self.items[self._check_index(index)] = value

    def __delitem__(self, index):
        del self.items[self._check_index(index)]
        self.version += 1

    def __len__(self) -> int:
        return len(self.items)

    def insert(self, index, value):
        self.items.insert(index, value)
        self.version += 1

    def pop(self, index=None):
        if not self.items:
            raise IndexOutOfRange("pop from empty array", container=self)
        value = self.items.pop() if index is None else self.items.pop(self._check_index(index))
        self.version += 1
        return value

    # Arrays compare by identity, like the objects they stand for.
    def __eq__(self, other):
        if isinstance(other, Array):
            return self is other
        if isinstance(other, list):
            return self.items == other
        return NotImplemented

    def __hash__(self):
        return id(self)

    def __repr__(self) -> str:
        return to_display_text(self)


class Dictionary(UserDict):
    """An insertion-ordered mapping restricted to int and string keys.

    Overwriting an existing key keeps its position; a new key is appended.
    """
    def __init__(self, *args, **kwargs):
        self.version = 0
        super().__init__(*args, **kwargs)

    def _check_key(self, key):
        if kind_of(key) not in KEY_KINDS:
            raise TypeMismatch(
                f"dictionary key must be an int or string, not {kind_of(key).value}",
                container=self, key=key,
            )
        return key

    def __getitem__(self, key):
        self._check_key(key)
        try:
            return self.data[key]
        except KeyError:
            raise KeyNotFound(f"key {_quoted(key)} not found", container=self, key=key) from None

    def __setitem__(self, key, value):
        self._check_key(key)
        if key not in self.data:
            self.version += 1
        self.data[key] = value

    def __delitem__(self, key):
        self._check_key(key)
        if key not in self.data:
            raise KeyNotFound(f"key {_quoted(key)} not found", container=self, key=key)
        del self.data[key]
        self.version += 1

    def __contains__(self, key):
        return kind_of(key) in KEY_KINDS and key in self.data

    def __eq__(self, other):
        if isinstance(other, Dictionary):
            return self is other
        return super().__eq__(other)

    def __hash__(self):
        return id(self)

    def __repr__(self) -> str:
        return to_display_text(self)


# =================================================================
# Classification and display
# =================================================================

def kind_of(value: Any) -> Kind:
    """Classifies a runtime value. bool is checked before int on purpose."""
    match value:
        case None:
            return Kind.NONE
        case bool():
            return Kind.BOOL
        case int():
            return Kind.INT
        case str():
            return Kind.STRING
        case Array():
            return Kind.ARRAY
        case Dictionary():
            return Kind.DICTIONARY
    raise TypeMismatch(f"not a tern value: {type(value).__name__}", operand=value)


_printer = None


def to_display_text(value: Any) -> str:
    """Canonical text of a value as `print` shows it."""
    global _printer
    if _printer is None:
        from tern.tern_printer import Printer
        _printer = Printer()
    return _printer.display(value)


def _quoted(key) -> str:
    return f'"{key}"' if isinstance(key, str) else to_display_text(key)


# =================================================================
# Indexing
# =================================================================

def index(container: Any, key: Any) -> Any:
    match kind_of(container):
        case Kind.ARRAY | Kind.DICTIONARY:
            return container[key]
        case Kind.STRING:
            if kind_of(key) is not Kind.INT:
                raise TypeMismatch(f"string index must be an int, not {kind_of(key).value}",
                                   container=container, key=key)
            if not 0 <= key < len(container):
                raise IndexOutOfRange(
                    f"string index {key} out of range for length {len(container)}",
                    container=container, key=key,
                )
            return container[key]
        case kind:
            raise NotIndexable(f"{kind.value} is not indexable", container=container, key=key)


def index_assign(container: Any, key: Any, value: Any) -> None:
    """Writes container[key]. Arrays never grow here; dictionaries insert."""
    kind_of(value)
    match kind_of(container):
        case Kind.ARRAY | Kind.DICTIONARY:
            container[key] = value
        case Kind.STRING:
            raise NotIndexable("strings are immutable", container=container, key=key)
        case kind:
            raise NotIndexable(f"{kind.value} does not support index assignment",
                               container=container, key=key)


def iterate(container: Any) -> Iterator[Tuple[Any, Any]]:
    """Returns a fresh lazy iterator of (key, value) pairs.

    Each call walks the container's current state. Changing the length of
    an Array or Dictionary while it is being walked raises
    MutationDuringIteration; overwriting existing entries is visible.
    """
    match kind_of(container):
        case Kind.ARRAY:
            return _iter_array(container)
        case Kind.DICTIONARY:
            return _iter_dictionary(container)
        case Kind.INT:
            # Negative ints iterate nothing
            return ((i, i) for i in range(container))
        case Kind.STRING:
            return enumerate(container)
        case kind:
            raise TypeMismatch(f"{kind.value} is not iterable", container=container)


def _check_version(container, version):
    if container.version != version:
        raise MutationDuringIteration(
            f"{kind_of(container).value} changed length during iteration", container=container
        )


def _iter_array(array: Array):
    version = array.version
    position = 0
    while position < len(array.items):
        _check_version(array, version)
        yield position, array.items[position]
        position += 1
    _check_version(array, version)


def _iter_dictionary(dictionary: Dictionary):
    version = dictionary.version
    keys = iter(dictionary.data)
    while True:
        _check_version(dictionary, version)
        try:
            key = next(keys)
        except StopIteration:
            return
        yield key, dictionary.data[key]


# =================================================================
# Operators
# =================================================================

def _mismatch(op: str, a: Any, b: Any) -> TypeMismatch:
    return TypeMismatch(
        f"unsupported operand kinds for {op}: {kind_of(a).value} and {kind_of(b).value}",
        op=op, lhs=a, rhs=b,
    )


def _require_ints(op: str, a: Any, b: Any) -> None:
    if kind_of(a) is not Kind.INT or kind_of(b) is not Kind.INT:
        raise _mismatch(op, a, b)


def add(a: Any, b: Any) -> Any:
    """`+`: int addition, or concatenation when either side is a string."""
    match kind_of(a), kind_of(b):
        case (Kind.STRING, _) | (_, Kind.STRING):
            return to_display_text(a) + to_display_text(b)
        case (Kind.INT, Kind.INT):
            return a + b
    raise _mismatch("+", a, b)


def sub(a, b):
    _require_ints("-", a, b)
    return a - b


def mul(a, b):
    _require_ints("*", a, b)
    return a * b


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def div(a, b):
    """Integer division truncating toward zero."""
    _require_ints("/", a, b)
    if b == 0:
        raise DivisionByZero("division by zero", op="/", lhs=a, rhs=b)
    return _trunc_div(a, b)


def rem(a, b):
    """Remainder with the sign of the dividend."""
    _require_ints("%", a, b)
    if b == 0:
        raise DivisionByZero("remainder by zero", op="%", lhs=a, rhs=b)
    return a - b * _trunc_div(a, b)


def _bitwise(op: str, fn: Callable[[Any, Any], Any]):
    def apply(a, b):
        match kind_of(a), kind_of(b):
            case (Kind.INT, Kind.INT) | (Kind.BOOL, Kind.BOOL):
                return fn(a, b)
        raise _mismatch(op, a, b)
    return apply


bit_and = _bitwise("&", lambda a, b: a & b)
bit_or = _bitwise("|", lambda a, b: a | b)
bit_xor = _bitwise("^", lambda a, b: a ^ b)


def shl(a, b):
    _require_ints("<<", a, b)
    if b < 0:
        raise TypeMismatch("negative shift count", op="<<", lhs=a, rhs=b)
    return a << b


def shr(a, b):
    _require_ints(">>", a, b)
    if b < 0:
        raise TypeMismatch("negative shift count", op=">>", lhs=a, rhs=b)
    return a >> b


def equals(a: Any, b: Any) -> bool:
    ka, kb = kind_of(a), kind_of(b)
    if ka is not kb:
        return False
    if ka in CONTAINER_KINDS:
        return a is b
    return a == b


def not_equals(a, b) -> bool:
    return not equals(a, b)


_ORDERINGS = {
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


def compare(op: str, a: Any, b: Any) -> bool:
    ka, kb = kind_of(a), kind_of(b)
    if ka is not kb or ka not in (Kind.INT, Kind.STRING, Kind.BOOL):
        raise _mismatch(op, a, b)
    return _ORDERINGS[op](a, b)


def negate(a):
    if kind_of(a) is not Kind.INT:
        raise TypeMismatch(f"cannot negate {kind_of(a).value}", op="-", operand=a)
    return -a


def logical_not(a):
    if kind_of(a) is not Kind.BOOL:
        raise TypeMismatch(f"'not' expects a bool, not {kind_of(a).value}", op="not", operand=a)
    return not a


BINARY_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "+": add,
    "-": sub,
    "*": mul,
    "/": div,
    "%": rem,
    "&": bit_and,
    "|": bit_or,
    "^": bit_xor,
    "<<": shl,
    ">>": shr,
    "==": equals,
    "!=": not_equals,
    "<": lambda a, b: compare("<", a, b),
    "<=": lambda a, b: compare("<=", a, b),
    ">": lambda a, b: compare(">", a, b),
    ">=": lambda a, b: compare(">=", a, b),
}

UNARY_OPERATORS: Dict[str, Callable[[Any], Any]] = {
    "-": negate,
    "not": logical_not,
}


# =================================================================
# Methods
# =================================================================

def _array_has(array, value):
    return any(equals(item, value) for item in array.items)


def _array_append(array, value):
    kind_of(value)
    array.append(value)


def _dict_has(dictionary, key):
    dictionary._check_key(key)
    return key in dictionary


def _dict_erase(dictionary, key):
    del dictionary[key]


# kind -> name -> (arity, implementation taking the receiver first)
METHODS: Dict[Kind, Dict[str, Tuple[int, Callable[..., Any]]]] = {
    Kind.NONE: {},
    Kind.BOOL: {},
    Kind.INT: {
        "abs": (0, abs),
    },
    Kind.STRING: {
        "len": (0, len),
    },
    Kind.ARRAY: {
        "len": (0, len),
        "append": (1, _array_append),
        "pop": (0, lambda array: array.pop()),
        "has": (1, _array_has),
    },
    Kind.DICTIONARY: {
        "len": (0, len),
        "has": (1, _dict_has),
        "keys": (0, lambda d: Array(d.data.keys())),
        "values": (0, lambda d: Array(d.data.values())),
        "erase": (1, _dict_erase),
    },
}


def call_method(receiver: Any, name: str, args: List[Any]) -> Any:
    kind = kind_of(receiver)
    if kind is Kind.NONE:
        raise TypeMismatch(f"cannot call method '{name}' on none", operand=receiver)
    try:
        arity, method = METHODS[kind][name]
    except KeyError:
        raise UndefinedFunction(f"{kind.value} has no method '{name}'", operand=receiver) from None
    if len(args) != arity:
        raise ArgumentCount(
            f"{kind.value}.{name} expects {arity} argument(s), got {len(args)}",
            operand=receiver,
        )
    return method(receiver, *args)
