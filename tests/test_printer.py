import pytest

from aoc.aoc_datatypes import Char, AocDict, AocFunction, Builtin, Scope
from aoc.aoc_printer import Printer


@pytest.fixture
def printer():
    return Printer()


@pytest.mark.parametrize("value, expected", [
    (42, b"42"),
    (-7, b"-7"),
    (1.0, b"1.0"),
    (0.5, b"0.5"),
    (1e20, b"100000000000000000000.0"),
    (1e16, b"10000000000000000.0"),
    (1e-05, b"0.00001"),
    (-0.0, b"-0.0"),
    (float("inf"), b"inf"),
    (float("-inf"), b"-inf"),
    (True, b"true"),
    (False, b"false"),
    (None, b"null"),
    (b"hello", b"hello"),
    (Char(97), b"a"),
])
def test_scalar_display_forms(printer, value, expected):
    assert printer.pformat(value) == expected


def test_strings_print_raw_at_top_level(printer):
    assert printer.pformat(b'say "hi"\n') == b'say "hi"\n'


def test_array_display_quotes_strings_and_chars(printer):
    assert printer.pformat([1, b"a", Char(98), None, 2.0]) == b"[1, \"a\", 'b', null, 2.0]"


def test_nested_string_escapes(printer):
    assert printer.pformat([b'a"b\n\t\\']) == b'["a\\"b\\n\\t\\\\"]'


def test_char_quote_escape_inside_array(printer):
    assert printer.pformat([Char(39)]) == b"['\\'']"


def test_dictionary_display_in_insertion_order(printer):
    d = AocDict([(b"b", 1), (b"a", [1, 2]), (3, True)])
    assert printer.pformat(d) == b'{"b": 1, "a": [1, 2], 3: true}'


def test_empty_containers(printer):
    assert printer.pformat([]) == b"[]"
    assert printer.pformat(AocDict()) == b"{}"


def test_self_containing_containers(printer):
    a = []
    a.append(a)
    assert printer.pformat(a) == b"[[...]]"
    d = AocDict()
    d[b"self"] = d
    assert printer.pformat(d) == b'{"self": {...}}'


def test_shared_but_acyclic_references_print_fully(printer):
    inner = [1]
    assert printer.pformat([inner, inner]) == b"[[1], [1]]"


def test_functions_and_builtins(printer):
    assert printer.pformat(AocFunction(["a", "b"], None, Scope(), "add")) == b"<fn add(a, b)>"
    assert printer.pformat(AocFunction(["x"], None, Scope())) == b"<fn(x)>"
    assert printer.pformat(Builtin("len", len, 1)) == b"<builtin len>"


def test_describe_returns_text(printer):
    assert printer.describe([b"\xc3\xa9"]) == '["é"]'
    assert printer.describe(b"\xff") == "�"
