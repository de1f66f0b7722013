"""
The core AOC interpreter: the Evaluator and its operator semantics.
"""
import inspect
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from aoc.aoc_datatypes import (
    I64_MIN, I64_MAX, AocError, AocRuntimeError, Scope, Node, Program, Block,
    IntLiteral, FloatLiteral, BoolLiteral, NullLiteral, CharLiteral, StringLiteral,
    Identifier, ArrayLiteral, DictLiteral, Prefix, Infix, Index, DotIndex,
    FunctionLiteral, Call, If, While, For, Assign, Break, Continue, Return, Use,
    Char, AocDict, AocFunction, Builtin, Response, is_return, is_loop_signal, type_name,
)
from aoc.aoc_parser import parse_or_raise


def read_source(path: str) -> str:
    """Default module loader: UTF-8 text from disk."""
    return Path(path).read_text(encoding="utf-8")


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def truthy(value) -> bool:
    """Only `false` and `null` are falsy."""
    return value is not None and value is not False


def values_equal(a, b) -> bool:
    """Language equality. Never fails; mismatched kinds are simply unequal."""
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, AocDict) and isinstance(b, AocDict):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b or not values_equal(value, b[key]):
                return False
        return True
    if isinstance(a, (AocFunction, Builtin)) or isinstance(b, (AocFunction, Builtin)):
        return a is b
    if type(a) is not type(b):
        return False
    return a == b


def euclid_divmod(a: int, b: int):
    """Euclidean division: the remainder is always in [0, |b|)."""
    q, r = divmod(a, b)
    if r < 0:
        r -= b
        q += 1
    return q, r


class Evaluator:
    """The AOC execution engine."""
    def __init__(self):
        self.side_effects: List[Any] = []
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node: Optional[Node] = None
        # Read-only scope holding the built-ins; imports run in a fresh child of it.
        self.builtins_scope: Scope = Scope(readonly=True)
        # Parsed modules keyed by resolved path. Evaluation is never cached.
        self.module_cache: Dict[str, Program] = {}
        self.loader: Callable[[str], str] = read_source
        self.source_dir: Optional[str] = None
        self._module_dirs: List[str] = []

    def _push_frame(self, name, func, args, call_site_node):
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': getattr(call_site_node, 'loc', None),
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("AOC_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def _error(self, message: str, node: Optional[Node]) -> AocRuntimeError:
        line = getattr(node, 'line', None)
        col = getattr(node, 'col', None)
        return AocRuntimeError(message, line, col)

    async def eval_block(self, nodes: List[Node], scope: Scope) -> Any:
        """Evaluate forms in order; the first control signal stops the sequence."""
        result = None
        for node in nodes:
            result = await self._eval(node, scope)
            if isinstance(result, Response):
                return result
        return result

    async def _eval(self, node: Any, scope: Scope) -> Any:
        """Recursive dispatcher for evaluating any AST node."""
        self.current_node = node
        match node:
            case Program() | Block():
                return await self.eval_block(node.nodes, scope)

            case IntLiteral() | FloatLiteral() | BoolLiteral() | StringLiteral():
                return node.value

            case NullLiteral():
                return None

            case CharLiteral():
                return Char(node.value)

            case Identifier():
                owner = scope.find_owner(node.name)
                if owner is None:
                    raise self._error(f"undefined variable '{node.name}'", node)
                return owner.bindings[node.name]

            case ArrayLiteral():
                items = []
                for item_node in node.items:
                    item = await self._eval(item_node, scope)
                    if isinstance(item, Response):
                        return item
                    items.append(item)
                return items

            case DictLiteral():
                result = AocDict()
                for key_node, value_node in node.pairs:
                    key = await self._eval(key_node, scope)
                    if isinstance(key, Response):
                        return key
                    value = await self._eval(value_node, scope)
                    if isinstance(value, Response):
                        return value
                    try:
                        result[key] = value
                    except AocError as e:
                        raise e.locate(key_node)
                return result

            case Prefix():
                right = await self._eval(node.right, scope)
                if isinstance(right, Response):
                    return right
                return self.prefix(node.operator, right, node)

            case Infix():
                left = await self._eval(node.left, scope)
                if isinstance(left, Response):
                    return left
                right = await self._eval(node.right, scope)
                if isinstance(right, Response):
                    return right
                return self.infix(node.operator, left, right, node)

            case Index():
                container = await self._eval(node.left, scope)
                if isinstance(container, Response):
                    return container
                key = await self._eval(node.index, scope)
                if isinstance(key, Response):
                    return key
                return self.get_index(container, key, node)

            case DotIndex():
                container = await self._eval(node.left, scope)
                if isinstance(container, Response):
                    return container
                if not isinstance(container, AocDict):
                    raise self._error(f"cannot read field '{node.key.name}' of {type_name(container)}", node)
                return container.lookup(node.key.name.encode("utf-8"))

            case FunctionLiteral():
                return AocFunction([p.name for p in node.params], node.body, scope, node.name)

            case Call():
                func = await self._eval(node.function, scope)
                if isinstance(func, Response):
                    return func
                args = []
                for arg_node in node.args:
                    arg = await self._eval(arg_node, scope)
                    if isinstance(arg, Response):
                        return arg
                    args.append(arg)
                return await self.call(func, args, node)

            case If():
                for condition, block in node.branches:
                    test = await self._eval(condition, scope)
                    if isinstance(test, Response):
                        return test
                    if truthy(test):
                        return await self.eval_block(block.nodes, Scope(parent=scope))
                if node.alternative is not None:
                    return await self.eval_block(node.alternative.nodes, Scope(parent=scope))
                return None

            case While():
                return await self._eval_while(node, scope)

            case For():
                return await self._eval_for(node, scope)

            case Assign():
                value = await self._eval(node.value, scope)
                if isinstance(value, Response):
                    return value
                signal = await self.assign(node.target, value, scope)
                if isinstance(signal, Response):
                    return signal
                return None

            case Break():
                return Response('break', None, node)

            case Continue():
                return Response('continue', None, node)

            case Return():
                value = None
                if node.value is not None:
                    value = await self._eval(node.value, scope)
                    if isinstance(value, Response):
                        return value
                return Response('return', value, node)

            case Use():
                return await self.use(node)

            case _:
                raise self._error(f"cannot evaluate {type(node).__name__}", node)

    # --- Loops ---

    async def _eval_while(self, node: While, scope: Scope):
        while True:
            test = await self._eval(node.condition, scope)
            if isinstance(test, Response):
                return test
            if not truthy(test):
                return None
            result = await self.eval_block(node.body.nodes, Scope(parent=scope))
            if isinstance(result, Response):
                if result.status == 'break':
                    return None
                if result.status != 'continue':
                    return result

    async def _eval_for(self, node: For, scope: Scope):
        loop_scope = Scope(parent=scope)
        signal = await self._eval(node.initial, loop_scope)
        if isinstance(signal, Response):
            return signal
        while True:
            test = await self._eval(node.condition, loop_scope)
            if isinstance(test, Response):
                return test
            if not truthy(test):
                return None
            result = await self.eval_block(node.body.nodes, Scope(parent=loop_scope))
            if isinstance(result, Response):
                if result.status == 'break':
                    return None
                if result.status != 'continue':
                    return result
            signal = await self._eval(node.after, loop_scope)
            if isinstance(signal, Response):
                return signal

    # --- Assignment ---

    async def assign(self, target: Node, value: Any, scope: Scope):
        """Bind an already evaluated value to a target pattern."""
        match target:
            case Identifier():
                scope.assign(target.name, value)

            case Index():
                container = await self._eval(target.left, scope)
                if isinstance(container, Response):
                    return container
                key = await self._eval(target.index, scope)
                if isinstance(key, Response):
                    return key
                self.set_index(container, key, value, target)

            case DotIndex():
                container = await self._eval(target.left, scope)
                if isinstance(container, Response):
                    return container
                if not isinstance(container, AocDict):
                    raise self._error(f"cannot set field '{target.key.name}' of {type_name(container)}", target)
                container[target.key.name.encode("utf-8")] = value

            case ArrayLiteral():
                if not isinstance(value, list):
                    raise self._error(f"cannot destructure {type_name(value)} into an array pattern", target)
                if len(value) != len(target.items):
                    raise self._error(
                        f"cannot destructure array of length {len(value)} into {len(target.items)} targets", target)
                for sub_target, item in zip(target.items, list(value)):
                    signal = await self.assign(sub_target, item, scope)
                    if isinstance(signal, Response):
                        return signal

            case _:
                raise self._error("invalid assignment target", target)
        return None

    # --- Indexing ---

    def get_index(self, container, key, node):
        if isinstance(container, (list, bytes)):
            if not is_int(key):
                raise self._error(f"{type_name(container)} index must be int, not {type_name(key)}", node)
            if key < 0 or key >= len(container):
                return None
            item = container[key]
            return Char(item) if isinstance(container, bytes) else item
        if isinstance(container, AocDict):
            try:
                return container.lookup(key)
            except AocError as e:
                raise e.locate(node)
        raise self._error(f"cannot index into {type_name(container)}", node)

    def set_index(self, container, key, value, node):
        if isinstance(container, list):
            if not is_int(key):
                raise self._error(f"array index must be int, not {type_name(key)}", node)
            if key < 0 or key >= len(container):
                raise self._error(f"index {key} out of bounds for array of length {len(container)}", node)
            container[key] = value
        elif isinstance(container, AocDict):
            try:
                container[key] = value
            except AocError as e:
                raise e.locate(node)
        else:
            raise self._error(f"cannot assign into index of {type_name(container)}", node)

    # --- Operators ---

    def check_int(self, value: int, node) -> int:
        if value < I64_MIN or value > I64_MAX:
            raise self._error("integer overflow", node)
        return value

    def prefix(self, op: str, right, node):
        if op == '!':
            if isinstance(right, bool):
                return not right
            if is_int(right):
                return ~right
        elif op == '-':
            if is_int(right):
                return self.check_int(-right, node)
            if isinstance(right, float):
                return -right
        raise self._error(f"unsupported operand type for prefix '{op}': {type_name(right)}", node)

    def infix(self, op: str, left, right, node):
        if op == '==':
            return values_equal(left, right)
        if op == '!=':
            return not values_equal(left, right)
        if op in ('&', '|'):
            if isinstance(left, bool) and isinstance(right, bool):
                return (left and right) if op == '&' else (left or right)
            if is_int(left) and is_int(right):
                return (left & right) if op == '&' else (left | right)
            raise self._unsupported(op, left, right, node)
        if op in ('<', '<=', '>', '>='):
            return self.compare(op, left, right, node)
        if op == '+':
            if isinstance(left, bytes) and isinstance(right, bytes):
                return left + right
            if isinstance(left, bytes) and isinstance(right, Char):
                return left + right.to_bytes()
            if isinstance(left, Char) and isinstance(right, bytes):
                return left.to_bytes() + right
        if is_number(left) and is_number(right):
            return self.arithmetic(op, left, right, node)
        raise self._unsupported(op, left, right, node)

    def _unsupported(self, op, left, right, node) -> AocRuntimeError:
        return self._error(
            f"unsupported operand types for '{op}': {type_name(left)} and {type_name(right)}", node)

    def arithmetic(self, op: str, left, right, node):
        if is_int(left) and is_int(right):
            if op == '+':
                return self.check_int(left + right, node)
            if op == '-':
                return self.check_int(left - right, node)
            if op == '*':
                return self.check_int(left * right, node)
            if right == 0:
                raise self._error("division by zero", node)
            q, r = euclid_divmod(left, right)
            return self.check_int(q, node) if op == '/' else r
        left, right = float(left), float(right)
        if op == '+':
            return left + right
        if op == '-':
            return left - right
        if op == '*':
            return left * right
        if right == 0:
            raise self._error("division by zero", node)
        if op == '/':
            return left / right
        # Python's float % takes the sign of a positive modulus, so this lands in [0, |right|)
        return left % abs(right)

    def compare(self, op: str, left, right, node) -> bool:
        if is_number(left) and is_number(right):
            a, b = left, right
        elif isinstance(left, bytes) and isinstance(right, bytes):
            a, b = left, right
        elif isinstance(left, Char) and isinstance(right, Char):
            a, b = left.byte, right.byte
        else:
            raise self._unsupported(op, left, right, node)
        match op:
            case '<':
                return a < b
            case '<=':
                return a <= b
            case '>':
                return a > b
            case _:
                return a >= b

    # --- Calls ---

    async def call(self, func: Any, args: List[Any], node: Optional[Node] = None):
        """Call an AOC function or built-in with evaluated arguments."""
        match func:
            case AocFunction():
                self._dbg("AocFunction call", repr(func), "argc", len(args))
                if len(args) != len(func.params):
                    raise self._error(
                        f"function {func.name or '<anonymous>'} expects {len(func.params)} "
                        f"arguments, got {len(args)}", node)
                call_scope = Scope(parent=func.closure)
                for name, value in zip(func.params, args):
                    call_scope[name] = value
                self._push_frame(func.name or '<fn>', func, args, node)
                result = await self.eval_block(func.body.nodes, call_scope)
                self._pop_frame()
                if isinstance(result, Response):
                    if is_return(result):
                        return result.value
                    raise self._error(f"'{result.status}' outside of a loop", result.node)
                return result

            case Builtin():
                self._dbg("Builtin call", func.name, "argc", len(args))
                if len(args) != func.arity:
                    raise self._error(f"{func.name} expects {func.arity} arguments, got {len(args)}", node)
                self._push_frame(func.name, func, args, node)
                try:
                    result = func.func(*args)
                    if inspect.isawaitable(result):
                        result = await result
                except AocError as e:
                    raise e.locate(node)
                self._pop_frame()
                return result

            case _:
                raise self._error(f"cannot call {type_name(func)}", node)

    # --- Import ---

    def resolve_module_path(self, path: str) -> str:
        if self._module_dirs:
            base = self._module_dirs[-1]
        else:
            base = self.source_dir or os.getcwd()
        return os.path.normpath(os.path.join(base, path))

    def _module_error(self, node: Use, e: AocError) -> AocRuntimeError:
        where = f" at line {e.line}, col {e.col}" if e.line is not None else ""
        return self._error(f'in module "{node.path}"{where}: {e.kind}: {e.message}', node)

    async def use(self, node: Use):
        """Evaluate another script in isolation and return its value."""
        path = self.resolve_module_path(node.path)
        program = self.module_cache.get(path)
        if program is None:
            self._dbg("IMPORT load", path)
            try:
                source = self.loader(path)
            except FileNotFoundError:
                raise self._error(f'cannot import "{node.path}": file not found', node)
            except OSError as e:
                raise self._error(f'cannot import "{node.path}": {e.strerror or e}', node)
            try:
                program = parse_or_raise(source)
            except AocError as e:
                raise self._module_error(node, e)
            self.module_cache[path] = program
        else:
            self._dbg("IMPORT cache hit", path)

        module_scope = Scope(parent=self.builtins_scope)
        self._module_dirs.append(os.path.dirname(path))
        try:
            result = await self.eval_block(program.nodes, module_scope)
            if is_loop_signal(result):
                raise self._error(f"'{result.status}' outside of a loop", result.node)
        except AocError as e:
            raise self._module_error(node, e)
        finally:
            self._module_dirs.pop()
        self.current_node = node
        return result.value if is_return(result) else result
