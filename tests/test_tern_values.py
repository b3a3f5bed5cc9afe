import pytest

from tern.tern_values import (
    Array, Dictionary, Kind, kind_of, to_display_text,
    index, index_assign, iterate, add, sub, mul, div, rem,
    bit_and, bit_or, bit_xor, shl, shr, equals, compare, negate, logical_not,
    call_method, BINARY_OPERATORS,
)
from tern.tern_errors import (
    TernError, IndexOutOfRange, KeyNotFound, TypeMismatch, NotIndexable,
    UndefinedFunction, ArgumentCount, DivisionByZero, MutationDuringIteration,
)


# --- Classification ---

@pytest.mark.parametrize("value, kind", [
    (None, Kind.NONE),
    (True, Kind.BOOL),
    (0, Kind.INT),
    ("", Kind.STRING),
    (Array(), Kind.ARRAY),
    (Dictionary(), Kind.DICTIONARY),
])
def test_kind_of(value, kind):
    assert kind_of(value) is kind


def test_kind_of_rejects_foreign_objects():
    with pytest.raises(TypeMismatch):
        kind_of(3.5)
    with pytest.raises(TypeMismatch):
        kind_of([1, 2])


# --- Array ---

def test_array_index_read_write():
    arr = Array([1, 2, 3])
    index_assign(arr, 1, "duck")
    assert index(arr, 1) == "duck"
    assert arr.items == [1, "duck", 3]


@pytest.mark.parametrize("bad", [3, 10, -1])
def test_array_index_out_of_range(bad):
    arr = Array([1, 2, 3])
    with pytest.raises(IndexOutOfRange):
        index(arr, bad)
    with pytest.raises(IndexOutOfRange):
        index_assign(arr, bad, 0)
    # Failed writes never grow or change the array
    assert arr.items == [1, 2, 3]


def test_array_index_requires_int():
    arr = Array([1])
    with pytest.raises(TypeMismatch):
        index(arr, "0")
    with pytest.raises(TypeMismatch):
        index(arr, True)


def test_array_errors_are_python_builtins_too():
    with pytest.raises(IndexError):
        index(Array(), 0)
    with pytest.raises(KeyError):
        index(Dictionary(), "x")


def test_array_equality_is_identity():
    a = Array([1, 2])
    b = Array([1, 2])
    assert equals(a, a)
    assert not equals(a, b)
    assert a == [1, 2]


# --- Dictionary ---

def test_dictionary_overwrite_keeps_position():
    d = Dictionary()
    index_assign(d, 1, 2)
    index_assign(d, 3, "dog")
    index_assign(d, "cat", "chicken")
    index_assign(d, 1, "duck")
    assert list(iterate(d)) == [(1, "duck"), (3, "dog"), ("cat", "chicken")]


def test_dictionary_missing_key():
    d = Dictionary({"a": 1})
    with pytest.raises(KeyNotFound) as exc:
        index(d, "b")
    assert exc.value.context["key"] == "b"
    assert "\"b\"" in str(exc.value)


def test_dictionary_keys_do_not_cross_kinds():
    d = Dictionary()
    index_assign(d, 1, "int")
    index_assign(d, "1", "string")
    assert len(d) == 2
    assert index(d, 1) == "int"
    assert index(d, "1") == "string"


@pytest.mark.parametrize("key", [True, None, 2.0])
def test_dictionary_rejects_other_key_kinds(key):
    d = Dictionary()
    with pytest.raises(TypeMismatch):
        index_assign(d, key, 1)
    with pytest.raises(TypeMismatch):
        index(d, key)
    assert len(d) == 0


def test_dictionary_delete_preserves_order_of_survivors():
    d = Dictionary({"a": 1, "b": 2, "c": 3})
    call_method(d, "erase", ["b"])
    assert list(d.keys()) == ["a", "c"]
    with pytest.raises(KeyNotFound):
        call_method(d, "erase", ["b"])


# --- Indexing other kinds ---

def test_string_index():
    assert index("duck", 0) == "d"
    with pytest.raises(IndexOutOfRange):
        index("duck", 4)


def test_strings_are_immutable():
    with pytest.raises(NotIndexable):
        index_assign("duck", 0, "l")


@pytest.mark.parametrize("value", [None, True, 5])
def test_not_indexable(value):
    with pytest.raises(NotIndexable):
        index(value, 0)


# --- Iteration ---

def test_iterate_array_in_index_order():
    assert list(iterate(Array(["a", "b"]))) == [(0, "a"), (1, "b")]


def test_iterate_is_restartable():
    arr = Array([1, 2])
    first = list(iterate(arr))
    arr[0] = 10
    assert list(iterate(arr)) == [(0, 10), (1, 2)]
    assert first == [(0, 1), (1, 2)]


def test_iterate_sees_overwrites():
    arr = Array([1, 2, 3])
    seen = []
    for i, v in iterate(arr):
        if i == 0:
            arr[2] = "changed"
        seen.append(v)
    assert seen == [1, 2, "changed"]


def test_iterate_detects_growth():
    arr = Array([1, 2])
    with pytest.raises(MutationDuringIteration):
        for _, v in iterate(arr):
            arr.append(v)


def test_iterate_detects_dictionary_insert():
    d = Dictionary({"a": 1})
    with pytest.raises(MutationDuringIteration):
        for k, _ in iterate(d):
            d[k + "x"] = 0


def test_iterate_int_and_string():
    assert [v for _, v in iterate(3)] == [0, 1, 2]
    assert list(iterate(-3)) == []
    assert list(iterate(0)) == []
    assert [v for _, v in iterate("ab")] == ["a", "b"]


def test_iterate_rejects_none():
    with pytest.raises(TypeMismatch):
        iterate(None)


# --- Operators ---

def test_add_ints():
    assert add(2, 3) == 5


def test_add_coerces_to_string():
    assert add(5, "x") == "5x"
    assert add("x", 5) == "x5"
    assert add("flag: ", True) == "flag: true"
    assert add("v: ", None) == "v: none"
    assert add("", Array([1, "a"])) == '[1, "a"]'


@pytest.mark.parametrize("a, b", [
    (Array(), 1),
    (True, 1),
    (None, 1),
    (Dictionary(), Dictionary()),
])
def test_add_mismatch(a, b):
    with pytest.raises(TypeMismatch):
        add(a, b)


def test_arithmetic():
    assert sub(7, 10) == -3
    assert mul(-4, 3) == -12
    with pytest.raises(TypeMismatch):
        mul("ab", 2)


@pytest.mark.parametrize("a, b, q, r", [
    (7, 2, 3, 1),
    (-7, 2, -3, -1),
    (7, -2, -3, 1),
    (-7, -2, 3, -1),
])
def test_division_truncates_toward_zero(a, b, q, r):
    assert div(a, b) == q
    assert rem(a, b) == r


def test_division_by_zero():
    with pytest.raises(DivisionByZero):
        div(1, 0)
    with pytest.raises(ZeroDivisionError):
        rem(1, 0)


def test_bitwise():
    assert bit_and(6, 3) == 2
    assert bit_or(6, 3) == 7
    assert bit_xor(6, 3) == 5
    assert bit_and(True, False) is False
    assert bit_xor(True, False) is True
    assert shl(1, 4) == 16
    assert shr(16, 2) == 4
    with pytest.raises(TypeMismatch):
        shl(1, -1)
    with pytest.raises(TypeMismatch):
        bit_or(1, True)


def test_equality_never_crosses_kinds():
    assert equals(1, 1)
    assert not equals(1, "1")
    assert not equals(1, True)
    assert not equals(None, 0)
    assert BINARY_OPERATORS["!="](1, "1") is True


def test_compare():
    assert compare("<", 1, 2)
    assert compare(">=", "b", "a")
    with pytest.raises(TypeMismatch):
        compare("<", 1, "2")
    with pytest.raises(TypeMismatch):
        compare("<", Array(), Array())


def test_unary():
    assert negate(3) == -3
    assert logical_not(False) is True
    with pytest.raises(TypeMismatch):
        negate("3")
    with pytest.raises(TypeMismatch):
        logical_not(0)


# --- Methods ---

def test_array_methods():
    arr = Array([1])
    call_method(arr, "append", ["x"])
    assert call_method(arr, "len", []) == 2
    assert call_method(arr, "has", ["x"]) is True
    assert call_method(arr, "pop", []) == "x"
    assert arr.items == [1]


def test_pop_empty_array():
    with pytest.raises(IndexOutOfRange):
        call_method(Array(), "pop", [])


def test_dictionary_methods():
    d = Dictionary({"a": 1, 2: "b"})
    assert call_method(d, "has", [2]) is True
    assert call_method(d, "keys", []).items == ["a", 2]
    assert call_method(d, "values", []).items == [1, "b"]


def test_int_and_string_methods():
    assert call_method(-4, "abs", []) == 4
    assert call_method("duck", "len", []) == 4


def test_method_errors():
    with pytest.raises(TypeMismatch):
        call_method(None, "len", [])
    with pytest.raises(UndefinedFunction):
        call_method(5, "len", [])
    with pytest.raises(ArgumentCount):
        call_method(Array(), "append", [])


def test_errors_carry_kind():
    with pytest.raises(TernError) as exc:
        add(Array(), 1)
    assert exc.value.kind == "TypeMismatch"
    assert exc.value.context["op"] == "+"


# --- Display text ---

def test_display_text_of_containers():
    d = Dictionary()
    d[1] = "duck"
    d["cat"] = Array([1, True, None])
    assert to_display_text(d) == '{1: "duck", "cat": [1, true, none]}'
    assert to_display_text("raw") == "raw"


def test_display_text_of_self_reference():
    arr = Array([1])
    arr.append(arr)
    assert to_display_text(arr) == "[1, [...]]"
