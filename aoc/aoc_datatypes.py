"""
Defines the core data types for the AOC language runtime.

This module provides the error taxonomy, the lexical Scope used for
environments and closures, the AST node classes produced by the parser,
and the runtime value classes the evaluator works with.

Plain Python types carry most values:

    Int -> int, Float -> float, Bool -> bool, Null -> None,
    String -> bytes, Array -> list

The remaining variants (Char, Dictionary, Function, Builtin) and the
non-value control signals (Response) are defined here.
"""

import collections.abc
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


# =================================================================
# Errors and Diagnostics
# =================================================================

@dataclass
class Diagnostic:
    """A positioned failure, as consumed by the CLI and the language server."""
    severity: str
    line: Optional[int]
    column: Optional[int]
    message: str
    source: str = "aoc"


class AocError(Exception):
    """Base class for every fatal lex, parse or runtime failure."""
    kind = "Error"

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col

    def locate(self, node: Any) -> 'AocError':
        """Stamp the error with a node's position unless it already has one."""
        if self.line is None and node is not None:
            self.line = getattr(node, 'line', None)
            self.col = getattr(node, 'col', None)
        return self

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic("error", self.line, self.col, f"{self.kind}: {self.message}")

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.message} at line {self.line}"


class LexError(AocError):
    kind = "LexError"


class ParseError(AocError):
    kind = "ParseError"

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None,
                 expected: Optional[str] = None, found: Optional[str] = None):
        super().__init__(message, line, col)
        self.expected = expected
        self.found = found


class AocRuntimeError(AocError):
    kind = "RuntimeError"


# =================================================================
# Scope
# =================================================================

class Scope:
    """A single level of the lexical environment chain.

    Lookup walks outward through `parent` to the first scope that binds the
    name. `assign` mutates the scope that already owns a name and otherwise
    creates the binding here. A `readonly` scope (the built-ins) can be read
    through but is never written by `assign`; user code shadows it instead.
    """
    def __init__(self, parent: Optional['Scope'] = None, readonly: bool = False):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent
        self.readonly = readonly

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Scope key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __getitem__(self, key: str) -> Any:
        owner = self.find_owner(key)
        if owner is not None:
            return owner.bindings[key]
        raise KeyError(key)

    def __contains__(self, key: Any) -> bool:
        return isinstance(key, str) and self.find_owner(key) is not None

    def find_owner(self, key: str) -> Optional['Scope']:
        """Finds the Scope in the chain that binds key."""
        scope = self
        while scope is not None:
            if key in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def assign(self, key: str, value: Any):
        owner = self.find_owner(key)
        if owner is None or owner.readonly:
            owner = self
        owner.bindings[key] = value

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"


# =================================================================
# AST Nodes
# =================================================================

class Node:
    """Base class for AST nodes.

    Subclasses list their children in `_fields`; positional constructor
    arguments fill them in order. Every node carries the 1-based start
    position of its first token and the end position just past its last
    token. Equality is structural and ignores positions.
    """
    _fields: Tuple[str, ...] = ()

    def __init__(self, *values, line: Optional[int] = None, col: Optional[int] = None,
                 end_line: Optional[int] = None, end_col: Optional[int] = None):
        if len(values) != len(self._fields):
            raise TypeError(f"{type(self).__name__} expects {len(self._fields)} fields, got {len(values)}")
        for name, value in zip(self._fields, values):
            setattr(self, name, value)
        self.line = line
        self.col = col
        self.end_line = end_line if end_line is not None else line
        self.end_col = end_col if end_col is not None else col

    @property
    def loc(self) -> Dict[str, Any]:
        return {'line': self.line, 'col': self.col, 'tag': type(self).__name__}

    def contains(self, line: int, col: int) -> bool:
        if self.line is None:
            return False
        if (line, col) < (self.line, self.col):
            return False
        return (line, col) < (self.end_line, self.end_col)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, f) == getattr(other, f) for f in self._fields)

    __hash__ = None

    def __repr__(self) -> str:
        args = ", ".join(repr(getattr(self, f)) for f in self._fields)
        return f"{type(self).__name__}({args})"


class Program(Node):
    """A parsed script: its top-level forms and the comments found in it."""
    _fields = ('nodes', 'comments')


class Block(Node):
    """`{ ... }` body of an if/while/for/fn. Its value is its last form's value."""
    _fields = ('nodes',)


class Comment(Node):
    _fields = ('text',)


class IntLiteral(Node):
    _fields = ('value',)


class FloatLiteral(Node):
    _fields = ('value',)


class BoolLiteral(Node):
    _fields = ('value',)


class NullLiteral(Node):
    _fields = ()


class CharLiteral(Node):
    _fields = ('value',)  # int, a single byte


class StringLiteral(Node):
    _fields = ('value',)  # bytes


class Identifier(Node):
    _fields = ('name',)


class ArrayLiteral(Node):
    _fields = ('items',)


class DictLiteral(Node):
    _fields = ('pairs',)  # list of (key node, value node)


class Prefix(Node):
    _fields = ('operator', 'right')


class Infix(Node):
    _fields = ('operator', 'left', 'right')


class Index(Node):
    _fields = ('left', 'index')


class DotIndex(Node):
    """`left.key`, sugar for `left["key"]`."""
    _fields = ('left', 'key')  # key is an Identifier


class FunctionLiteral(Node):
    _fields = ('params', 'body', 'name')  # params: list of Identifier


class Call(Node):
    _fields = ('function', 'args')


class If(Node):
    """if / else if / else chain. `branches` is a list of (condition, Block)."""
    _fields = ('branches', 'alternative')


class While(Node):
    _fields = ('condition', 'body')


class For(Node):
    _fields = ('initial', 'condition', 'after', 'body')


class Assign(Node):
    _fields = ('target', 'value')


class Break(Node):
    _fields = ()


class Continue(Node):
    _fields = ()


class Return(Node):
    _fields = ('value',)  # None for a bare `return`


class Use(Node):
    _fields = ('path',)  # str


# =================================================================
# Runtime Values
# =================================================================

class Char:
    """A single raw byte, as produced by char literals and string indexing."""
    __slots__ = ('byte',)

    def __init__(self, byte: int):
        if not 0 <= byte <= 255:
            raise ValueError(f"char out of range: {byte}")
        self.byte = byte

    def to_bytes(self) -> bytes:
        return bytes((self.byte,))

    def __eq__(self, other):
        if not isinstance(other, Char):
            return NotImplemented
        return self.byte == other.byte

    def __hash__(self):
        return hash(('char', self.byte))

    def __repr__(self) -> str:
        return f"Char({chr(self.byte)!r})"


def hash_key(key: Any) -> Tuple[str, Any]:
    """Tag a dictionary key so that 1, true and '1' stay distinct."""
    if isinstance(key, bool):
        return ('bool', key)
    if isinstance(key, int):
        return ('int', key)
    if isinstance(key, bytes):
        return ('string', key)
    if isinstance(key, Char):
        return ('char', key.byte)
    raise AocRuntimeError(f"data type {type_name(key)} can't be hashed")


class AocDict(collections.abc.MutableMapping):
    """The Dictionary value: insertion-ordered, reference semantics.

    Hashable by identity like any other shared container; two AocDicts
    compare equal only if they are the same object (the language's deep
    equality lives in the evaluator).
    """
    def __init__(self, pairs: Optional[collections.abc.Iterable] = None):
        self._entries: Dict[Tuple[str, Any], Tuple[Any, Any]] = {}
        for key, value in (pairs or ()):
            self[key] = value

    def __getitem__(self, key):
        return self._entries[hash_key(key)][1]

    def __setitem__(self, key, value):
        self._entries[hash_key(key)] = (key, value)

    def __delitem__(self, key):
        del self._entries[hash_key(key)]

    def __contains__(self, key) -> bool:
        return hash_key(key) in self._entries

    def __iter__(self) -> Iterator[Any]:
        for key, _ in list(self._entries.values()):
            yield key

    def __len__(self) -> int:
        return len(self._entries)

    def items(self):
        return [(k, v) for k, v in self._entries.values()]

    def lookup(self, key) -> Any:
        """Value for key, or None when absent. Unhashable keys still fail."""
        entry = self._entries.get(hash_key(key))
        return None if entry is None else entry[1]

    def __hash__(self):
        return id(self)

    def __eq__(self, other):
        if isinstance(other, AocDict):
            return self is other
        if isinstance(other, collections.abc.Mapping):
            return dict(self.items()) == dict(other.items())
        return NotImplemented

    def __repr__(self):
        from aoc.aoc_printer import Printer
        return Printer().describe(self)


class AocFunction:
    """Represents a function defined with `fn`.

    This is a closure, bundling the parameter names, the body block and the
    scope in which the literal was evaluated. Equality is identity.
    """
    def __init__(self, params: List[str], body: Block, closure: Scope, name: Optional[str] = None):
        self.params = params
        self.body = body
        self.closure = closure
        self.name = name

    def __repr__(self) -> str:
        label = f"fn {self.name}" if self.name else "fn"
        return f"<{label}({', '.join(self.params)})>"


class Builtin:
    """A host function bound into the built-ins scope."""
    def __init__(self, name: str, func: Callable, arity: int):
        self.name = name
        self.func = func
        self.arity = arity

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"


class Response:
    """A control signal produced by `break`, `continue` or `return`.

    Responses are never language values; the evaluator hands them upward
    until a loop (break/continue) or a call boundary (return) consumes them.
    """
    def __init__(self, status: str, value: Any = None, node: Optional[Node] = None):
        self.status = status
        self.value = value
        self.node = node

    def __repr__(self) -> str:
        return f"<Response {self.status} {self.value!r}>"

    def __eq__(self, other):
        if not isinstance(other, Response):
            return NotImplemented
        return self.status == other.status and self.value == other.value


def is_return(x) -> bool:
    return isinstance(x, Response) and x.status == "return"


def is_loop_signal(x) -> bool:
    return isinstance(x, Response) and x.status in ("break", "continue")


def type_name(value: Any) -> str:
    """Language-level name of a value's kind, used in error messages."""
    if value is None: return 'null'
    if isinstance(value, bool): return 'bool'
    if isinstance(value, int): return 'int'
    if isinstance(value, float): return 'float'
    if isinstance(value, bytes): return 'string'
    if isinstance(value, Char): return 'char'
    if isinstance(value, list): return 'array'
    if isinstance(value, AocDict): return 'dictionary'
    if isinstance(value, AocFunction): return 'function'
    if isinstance(value, Builtin): return 'builtin'
    return type(value).__name__
