import pytest

from aoc.aoc_datatypes import (
    Scope, Diagnostic, AocError, ParseError, AocRuntimeError, IntLiteral, Identifier,
    Char, AocDict, AocFunction, Builtin, Response, hash_key, type_name, is_return, is_loop_signal,
)

# --- Scope Tests ---

def test_scope_init():
    parent = Scope()
    child = Scope(parent=parent)
    assert child.parent is parent
    assert not child.bindings
    assert Scope().parent is None


def test_scope_lookup_walks_parents():
    parent = Scope()
    parent["a"] = 100
    child = Scope(parent=parent)
    child["b"] = 2
    assert child["a"] == 100
    assert "a" in child
    assert "b" not in parent
    with pytest.raises(KeyError):
        _ = child["missing"]


def test_scope_assign_mutates_owner():
    parent = Scope()
    parent["x"] = 1
    child = Scope(parent=parent)
    child.assign("x", 2)
    assert parent["x"] == 2
    assert "x" not in child.bindings


def test_scope_assign_new_name_binds_innermost():
    parent = Scope()
    child = Scope(parent=parent)
    child.assign("y", 3)
    assert child.bindings == {"y": 3}
    assert "y" not in parent


def test_readonly_scope_is_shadowed_not_written():
    builtins = Scope(readonly=True)
    builtins["len"] = "builtin"
    main = Scope(parent=builtins)
    main.assign("len", 5)
    assert builtins["len"] == "builtin"
    assert main["len"] == 5


def test_scope_rejects_non_str_keys():
    with pytest.raises(TypeError):
        Scope()[1] = 2


# --- Errors ---

def test_error_to_diagnostic():
    err = ParseError("expected x", 2, 3)
    assert err.to_diagnostic() == Diagnostic("error", 2, 3, "ParseError: expected x")


def test_error_str_includes_line():
    assert str(AocRuntimeError("boom", 4, 1)) == "boom at line 4"
    assert str(AocRuntimeError("boom")) == "boom"


def test_locate_keeps_existing_position():
    node = IntLiteral(1, line=9, col=9)
    assert AocRuntimeError("x", 1, 2).locate(node).line == 1
    located = AocRuntimeError("x").locate(node)
    assert (located.line, located.col) == (9, 9)
    assert isinstance(located, AocError)


# --- AST nodes ---

def test_node_equality_ignores_positions():
    assert IntLiteral(1, line=1, col=1) == IntLiteral(1, line=5, col=7)
    assert IntLiteral(1) != IntLiteral(2)
    assert Identifier("a") != IntLiteral(1)


def test_node_field_count_is_checked():
    with pytest.raises(TypeError):
        IntLiteral()


def test_node_contains_is_end_exclusive():
    node = Identifier("abc", line=1, col=5, end_line=1, end_col=8)
    assert node.contains(1, 5)
    assert node.contains(1, 7)
    assert not node.contains(1, 8)
    assert not node.contains(1, 4)


# --- Values ---

def test_char_equality_and_bytes():
    assert Char(97) == Char(97)
    assert Char(97).to_bytes() == b"a"
    with pytest.raises(ValueError):
        Char(256)


def test_hash_key_keeps_kinds_distinct():
    d = AocDict()
    d[1] = "int"
    d[True] = "bool"
    d[b"1"] = "string"
    d[Char(49)] = "char"
    assert len(d) == 4
    assert d[1] == "int"
    assert d[True] == "bool"


def test_unhashable_keys_raise():
    with pytest.raises(AocRuntimeError) as exc:
        hash_key(1.5)
    assert "data type float can't be hashed" in exc.value.message
    with pytest.raises(AocRuntimeError):
        AocDict()[[1]] = 2


def test_aocdict_lookup_and_order():
    d = AocDict([(b"b", 2), (b"a", 1)])
    assert list(d) == [b"b", b"a"]
    assert d.items() == [(b"b", 2), (b"a", 1)]
    assert d.lookup(b"z") is None
    assert b"a" in d
    del d[b"b"]
    assert list(d) == [b"a"]


def test_aocdict_identity_semantics():
    a = AocDict([(b"k", 1)])
    b = AocDict([(b"k", 1)])
    assert a != b
    assert a == a
    assert a == {b"k": 1}
    assert len({a, b}) == 2


def test_aocdict_repr_uses_display_form():
    assert repr(AocDict([(b"k", 1)])) == '{"k": 1}'


def test_function_and_builtin_repr():
    fn = AocFunction(["a", "b"], None, Scope(), "add")
    assert repr(fn) == "<fn add(a, b)>"
    assert repr(Builtin("len", len, 1)) == "<builtin len>"


def test_response_helpers():
    assert is_return(Response("return", 1))
    assert not is_return(Response("break"))
    assert is_loop_signal(Response("continue"))
    assert Response("return", 1) == Response("return", 1)


@pytest.mark.parametrize("value, name", [
    (None, "null"), (True, "bool"), (1, "int"), (1.0, "float"), (b"s", "string"),
    (Char(1), "char"), ([], "array"), (AocDict(), "dictionary"),
    (Builtin("len", len, 1), "builtin"),
])
def test_type_name(value, name):
    assert type_name(value) == name
