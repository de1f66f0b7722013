import inspect
import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Literal, Optional

from aoc.aoc_datatypes import (
    I64_MIN, I64_MAX, AocError, AocRuntimeError, Diagnostic, Scope,
    Char, AocDict, Builtin, Response, type_name,
)
from aoc.aoc_interpreter import Evaluator, is_int, truthy
from aoc.aoc_parser import parse_or_raise
from aoc.aoc_printer import Printer

# ===================================================================
# 1. Built-in Library
# ===================================================================

INT_PATTERN = re.compile(rb"[+-]?[0-9]+")
FLOAT_PATTERN = re.compile(rb"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?")


def _in_i64(value: int) -> bool:
    return I64_MIN <= value <= I64_MAX


def parse_i64(text: bytes) -> Optional[int]:
    """Decimal text -> Int, or None when it does not fit in signed 64 bits."""
    sign = b"-" if text.startswith(b"-") else b""
    digits = text.lstrip(b"+-").lstrip(b"0") or b"0"
    # No i64 needs more than 19 digits; longer text never reaches int()
    if len(digits) > 19:
        return None
    result = int(sign + digits)
    return result if _in_i64(result) else None


def round_half_away(x: float) -> int:
    r = math.floor(x)
    diff = x - r
    if diff > 0.5 or (diff == 0.5 and x > 0):
        r += 1
    return r


def require_string(name: str, value) -> bytes:
    if not isinstance(value, bytes):
        raise AocRuntimeError(f"{name}: expected string, got {type_name(value)}")
    return value


def to_whole(name: str, value, op: Callable[[float], int]):
    """Float -> Int through op; Ints pass through, NaN/inf and overflow give null."""
    if is_int(value):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        result = op(value)
        return result if _in_i64(result) else None
    raise AocRuntimeError(f"{name}: expected number, got {type_name(value)}")


class StdLib:
    """Contains Python implementations for all AOC built-ins.

    Every method named `_name` is bound into the built-ins scope as `name`;
    its arity is the number of parameters it takes.
    """
    def __init__(self, evaluator: Evaluator, runner: 'ScriptRunner'):
        self.evaluator = evaluator
        self.runner = runner
        self.printer = Printer()

    # --- I/O ---
    def _print(self, value):
        data = self.printer.pformat(value) + b"\n"
        stdout = self.runner.stdout
        if stdout is None:
            # No stream to write to: collect for ExecutionResult.output
            self.evaluator.side_effects.append({'topics': ['stdout'], 'message': data})
        else:
            stdout.write(data)
            stdout.flush()
        return None

    def _input(self):
        stdin = self.runner.stdin
        if stdin is None:
            return None
        line = stdin.readline()
        if not line:
            return None
        if isinstance(line, str):
            line = line.encode("utf-8")
        if line.endswith(b"\n"):
            line = line[:-1]
            if line.endswith(b"\r"):
                line = line[:-1]
        return line

    # --- Collections ---
    def _len(self, value):
        if isinstance(value, (bytes, list, AocDict)):
            return len(value)
        raise AocRuntimeError(f"len: unsupported argument type {type_name(value)}")

    def _push(self, array, value):
        if not isinstance(array, list):
            raise AocRuntimeError(f"push: expected array, got {type_name(array)}")
        array.append(value)
        return None

    def _pop(self, array):
        if not isinstance(array, list):
            raise AocRuntimeError(f"pop: expected array, got {type_name(array)}")
        return array.pop() if array else None

    def _del(self, container, key):
        if isinstance(container, AocDict):
            if key not in container:
                return None
            value = container[key]
            del container[key]
            return value
        if isinstance(container, list):
            if not is_int(key):
                raise AocRuntimeError(f"del: array index must be int, not {type_name(key)}")
            if 0 <= key < len(container):
                return container.pop(key)
            return None
        raise AocRuntimeError(f"del: expected array or dictionary, got {type_name(container)}")

    # --- Strings ---
    def _split(self, string, separator):
        if not isinstance(string, bytes):
            raise AocRuntimeError(f"split: expected string, got {type_name(string)}")
        if isinstance(separator, Char):
            separator = separator.to_bytes()
        if not isinstance(separator, bytes):
            raise AocRuntimeError(f"split: separator must be string or char, not {type_name(separator)}")
        if separator == b"":
            return [bytes((b,)) for b in string]
        return string.split(separator)

    def _trim(self, string):
        return require_string("trim", string).strip()

    def _trim_start(self, string):
        return require_string("trim_start", string).lstrip()

    def _trim_end(self, string):
        return require_string("trim_end", string).rstrip()

    # --- Conversions ---
    def _int(self, value):
        match value:
            case None:
                return None
            case bool():
                return int(value)
            case int():
                return value
            case float():
                if math.isnan(value) or math.isinf(value):
                    return None
                result = int(value)
                return result if _in_i64(result) else None
            case bytes():
                if not INT_PATTERN.fullmatch(value):
                    return None
                return parse_i64(value)
            case Char():
                return value.byte - 48 if 48 <= value.byte <= 57 else None
        raise AocRuntimeError(f"int: cannot convert {type_name(value)}")

    def _float(self, value):
        match value:
            case None:
                return None
            case bool():
                return 1.0 if value else 0.0
            case int() | float():
                return float(value)
            case bytes():
                if not FLOAT_PATTERN.fullmatch(value):
                    return None
                return float(value)
            case Char():
                return float(value.byte - 48) if 48 <= value.byte <= 57 else None
        raise AocRuntimeError(f"float: cannot convert {type_name(value)}")

    def _str(self, value):
        return self.printer.pformat(value)

    def _char(self, value):
        match value:
            case None:
                return None
            case bool():
                raise AocRuntimeError("char: cannot convert bool")
            case int():
                return Char(value) if 0 <= value <= 255 else None
            case bytes():
                return Char(value[0]) if len(value) == 1 else None
            case Char():
                return value
        raise AocRuntimeError(f"char: cannot convert {type_name(value)}")

    def _bool(self, value):
        return truthy(value)

    def _is_null(self, value):
        return value is None

    # --- Math ---
    def _floor(self, value):
        return to_whole("floor", value, math.floor)

    def _ceil(self, value):
        return to_whole("ceil", value, math.ceil)

    def _round(self, value):
        return to_whole("round", value, round_half_away)


# ===================================================================
# 2. Script Execution
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    diagnostic: Optional[Diagnostic] = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def output(self) -> str:
        """Everything the script printed, decoded as UTF-8."""
        data = b"".join(e['message'] for e in self.side_effects if 'stdout' in e.get('topics', ()))
        return data.decode("utf-8", errors="replace")

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            col_info = f", col {col}" if col is not None else ""
            return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Parses and executes AOC code.

    The runner owns a read-only built-ins scope and a main scope beneath it.
    Successive `handle_script` calls share the main scope, which is what the
    REPL relies on.
    """

    def __init__(self, stdin: Optional[BinaryIO] = None, stdout: Optional[BinaryIO] = None,
                 loader: Optional[Callable[[str], str]] = None):
        self.stdin = stdin
        self.stdout = stdout
        self.source_dir: Optional[str] = None  # directory of the current source file, if known

        self.evaluator = Evaluator()
        if loader is not None:
            self.evaluator.loader = loader
        self.builtins_scope = self.evaluator.builtins_scope

        stdlib = StdLib(self.evaluator, self)
        for name, member in inspect.getmembers(stdlib):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                aoc_name = name[1:]
                arity = len(inspect.signature(member).parameters)
                self.builtins_scope[aoc_name] = Builtin(aoc_name, member, arity)

        self.main_scope = Scope(parent=self.builtins_scope)
        self._current_script_source: Optional[str] = None

    @property
    def loader(self) -> Callable[[str], str]:
        return self.evaluator.loader

    @loader.setter
    def loader(self, value: Callable[[str], str]):
        self.evaluator.loader = value

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        """A few numbered lines around `line`, marked with '>' and a caret under `col`."""
        source_lines = source.splitlines()
        if not 1 <= line <= len(source_lines):
            return ""
        first = max(1, line - radius)
        last = min(len(source_lines), line + radius)
        gutter = len(str(last))
        out = []
        for number in range(first, last + 1):
            marker = ">" if number == line else " "
            out.append(f"{marker} {number:>{gutter}} | {source_lines[number - 1]}")
            if number == line and col is not None:
                out.append(f"  {'':>{gutter}} | {' ' * max(col - 1, 0)}^")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        lines = ["Call stack (most recent call last):"]
        for frame in stack:
            site = frame.get('call_site') or {}
            where = ""
            if site.get('line') is not None:
                where = f" (called at line {site['line']}, col {site['col']})"
            lines.append(f"  in {frame['name']}{where}")
        return "\n".join(lines)

    def _format_error(self, e: AocError, source: str) -> tuple[str, Optional[Token]]:
        msg = f"{e.kind}: {e.message}"
        token = None
        if e.line is not None:
            token = {'line': e.line, 'col': e.col}
            context = self._source_context(source, e.line, e.col)
            if context:
                msg = f"{msg}\n{context}"
        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg, token

    def _error_result(self, e: AocError, source: str) -> ExecutionResult:
        msg, token = self._format_error(e, source)
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(
            status='error',
            error_message=msg,
            error_token=token,
            diagnostic=e.to_diagnostic(),
            side_effects=self.evaluator.side_effects,
        )

    async def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script. Never raises."""
        # Each run gets its own list so earlier results keep their effects
        self.evaluator.side_effects = []
        self.evaluator.call_stack.clear()
        self.evaluator.current_node = None
        self.evaluator.source_dir = self.source_dir or os.getcwd()
        self._current_script_source = source_code
        try:
            program = parse_or_raise(source_code)
            result = await self.evaluator._eval(program, self.main_scope)
            if isinstance(result, Response):
                where = "function" if result.status == 'return' else "loop"
                raise AocRuntimeError(f"'{result.status}' outside of a {where}",
                                      result.node.line, result.node.col)
            return ExecutionResult(
                status='success',
                value=result,
                side_effects=self.evaluator.side_effects,
            )
        except AocError as e:
            return self._error_result(e.locate(self.evaluator.current_node), source_code)
        except RecursionError:
            e = AocRuntimeError("stack overflow").locate(self.evaluator.current_node)
            return self._error_result(e, source_code)

    async def run_file(self, path: str) -> ExecutionResult:
        """Run a script file; imports resolve relative to its directory.

        Raises FileNotFoundError when the file does not exist.
        """
        p = Path(path)
        source = p.read_text(encoding="utf-8")
        self.source_dir = str(p.parent.resolve())
        return await self.handle_script(source)
