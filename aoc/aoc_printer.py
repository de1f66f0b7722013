"""
Display forms for AOC values.

`pformat` produces the bytes written by `print` and returned by `str()`.
Strings and chars print raw at the top level and quoted inside containers.
"""
import math
from decimal import Decimal

from aoc.aoc_datatypes import AocDict, AocFunction, Builtin, Char, Response

REPR_ESCAPES = {
    ord("\\"): b"\\\\",
    ord('"'): b'\\"',
    ord("\n"): b"\\n",
    ord("\t"): b"\\t",
}


class Printer:
    """Formats AOC values into their display form."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> bytes:
        """Public entry point: the top-level display form of obj."""
        if isinstance(obj, bytes):
            return obj
        if isinstance(obj, Char):
            return obj.to_bytes()
        return self._format(obj, set())

    def describe(self, obj) -> str:
        """Display form as text, for error messages and the REPL."""
        return self.pformat(obj).decode("utf-8", errors="replace")

    def _format(self, obj, seen: set) -> bytes:
        handler = self._get_handler(obj)
        return handler(obj, seen)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, AocDict):
            return self._pformat_dict
        if isinstance(obj, list):
            return self._pformat_array
        return lambda o, s: repr(o).encode("utf-8")

    def _create_handlers(self):
        return {
            int: self._pformat_int,
            float: self._pformat_float,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            bytes: self._pformat_string,
            Char: self._pformat_char,
            list: self._pformat_array,
            AocDict: self._pformat_dict,
            AocFunction: self._pformat_function,
            Builtin: self._pformat_builtin,
            Response: self._pformat_response,
        }

    def _pformat_int(self, obj, seen):
        return str(obj).encode("ascii")

    def _pformat_float(self, obj, seen):
        if math.isinf(obj) or math.isnan(obj):
            return repr(obj).encode("ascii")
        # Shortest round-trip digits, written out positionally: 1e16 -> 10000000000000000.0
        text = format(Decimal(repr(obj)), "f")
        if "." not in text:
            text += ".0"
        return text.encode("ascii")

    def _pformat_bool(self, obj, seen):
        return b"true" if obj else b"false"

    def _pformat_none(self, obj, seen):
        return b"null"

    def _pformat_string(self, obj, seen):
        out = bytearray(b'"')
        for byte in obj:
            out += REPR_ESCAPES.get(byte, bytes((byte,)))
        out += b'"'
        return bytes(out)

    def _pformat_char(self, obj, seen):
        if obj.byte == ord("'"):
            return b"'\\''"
        escaped = REPR_ESCAPES.get(obj.byte, obj.to_bytes())
        if obj.byte == ord('"'):
            escaped = b'"'
        return b"'" + escaped + b"'"

    def _pformat_array(self, obj, seen):
        if id(obj) in seen:
            return b"[...]"
        seen.add(id(obj))
        try:
            return b"[" + b", ".join(self._format(item, seen) for item in obj) + b"]"
        finally:
            seen.discard(id(obj))

    def _pformat_dict(self, obj, seen):
        if id(obj) in seen:
            return b"{...}"
        seen.add(id(obj))
        try:
            pairs = [self._format(k, seen) + b": " + self._format(v, seen) for k, v in obj.items()]
            return b"{" + b", ".join(pairs) + b"}"
        finally:
            seen.discard(id(obj))

    def _pformat_function(self, obj, seen):
        params = ", ".join(obj.params)
        label = f"fn {obj.name}" if obj.name else "fn"
        return f"<{label}({params})>".encode("utf-8")

    def _pformat_builtin(self, obj, seen):
        return f"<builtin {obj.name}>".encode("utf-8")

    def _pformat_response(self, obj, seen):
        return f"<{obj.status}>".encode("utf-8")
