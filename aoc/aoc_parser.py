"""
Recursive-descent parser for AOC with Pratt-style precedence climbing.

`parse` is the side-effect-free entry point used by tooling: it never
raises and returns the program together with any diagnostics. The runner
uses `parse_or_raise`, which surfaces the first LexError/ParseError.
"""
from typing import Callable, List, Optional, Tuple

from aoc.aoc_datatypes import (
    Diagnostic, LexError, ParseError, Node, Program, Block,
    IntLiteral, FloatLiteral, BoolLiteral, NullLiteral, CharLiteral, StringLiteral,
    Identifier, ArrayLiteral, DictLiteral, Prefix, Infix, Index, DotIndex,
    FunctionLiteral, Call, If, While, For, Assign, Break, Continue, Return, Use,
)
from aoc.aoc_lexer import (
    Lexer, Token, TK_INT, TK_FLOAT, TK_STRING, TK_CHAR, TK_IDENT, TK_EOL, TK_EOF,
)

# Precedence levels, lowest first.
LOWEST = 0
ASSIGN = 1
OR = 2
AND = 3
EQUALS = 4
LESS_GREATER = 5
SUM = 6
PRODUCT = 7
PREFIX = 8
CALL_INDEX = 9

PRECEDENCES = {
    "=": ASSIGN,
    "|": OR,
    "&": AND,
    "==": EQUALS,
    "!=": EQUALS,
    "<": LESS_GREATER,
    "<=": LESS_GREATER,
    ">": LESS_GREATER,
    ">=": LESS_GREATER,
    "+": SUM,
    "-": SUM,
    "*": PRODUCT,
    "/": PRODUCT,
    "%": PRODUCT,
    "(": CALL_INDEX,
    "[": CALL_INDEX,
    ".": CALL_INDEX,
}

BINARY_OPERATORS = {"|", "&", "==", "!=", "<", "<=", ">", ">=", "+", "-", "*", "/", "%"}

TERMINATORS = (TK_EOL, ";")


class Parser:
    """Consumes a token list and builds a Program.

    Parsing stops at the first malformed construct. Top-level forms parsed
    before the failure stay available through `partial_program()`.
    """
    def __init__(self, tokens: List[Token], comments: Optional[list] = None):
        self.tokens = tokens
        self.pos = 0
        self.last: Optional[Token] = None
        self.comments = list(comments or [])
        self.nodes: List[Node] = []

    # --- token helpers ---

    def peek(self, offset: int = 0) -> Token:
        i = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[i]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != TK_EOF:
            self.pos += 1
        self.last = tok
        return tok

    def error(self, expected: str, tok: Token) -> ParseError:
        found = tok.describe()
        return ParseError(f"expected {expected}, found {found}", tok.line, tok.col,
                          expected=expected, found=found)

    def expect(self, kind: str, expected: Optional[str] = None) -> Token:
        tok = self.advance()
        if tok.kind != kind:
            raise self.error(expected or f"'{kind}'", tok)
        return tok

    def skip_eol(self):
        while self.peek().kind == TK_EOL:
            self.advance()

    def skip_terminators(self):
        while self.peek().kind in TERMINATORS:
            self.advance()

    def finish(self, node: Node, start) -> Node:
        """Give node the span from `start` (a token or node) to the last consumed token."""
        node.line, node.col = start.line, start.col
        node.end_line, node.end_col = self.last.end_line, self.last.end_col
        return node

    # --- program and blocks ---

    def parse_program(self) -> Program:
        self.skip_terminators()
        while self.peek().kind != TK_EOF:
            self.nodes.append(self.parse_expression(LOWEST))
            tok = self.peek()
            if tok.kind == TK_EOF:
                break
            if tok.kind not in TERMINATORS:
                raise self.error("end of line", tok)
            self.skip_terminators()
        return self.partial_program()

    def partial_program(self) -> Program:
        eof = self.tokens[-1]
        return Program(list(self.nodes), self.comments, line=1, col=1,
                       end_line=eof.end_line, end_col=eof.end_col)

    def parse_block(self) -> Block:
        start = self.expect("{", "'{'")
        nodes = []
        self.skip_terminators()
        while self.peek().kind != "}":
            if self.peek().kind == TK_EOF:
                raise self.error("'}'", self.peek())
            nodes.append(self.parse_expression(LOWEST))
            tok = self.peek()
            if tok.kind == "}":
                break
            if tok.kind not in TERMINATORS:
                raise self.error("end of line or '}'", tok)
            self.skip_terminators()
        self.advance()
        return self.finish(Block(nodes), start)

    def parse_sequence(self, end: str, parse_item: Callable[[], object]) -> list:
        """Comma-separated items up to `end`; a trailing comma is allowed."""
        items = []
        while True:
            self.skip_eol()
            if self.peek().kind == end:
                self.advance()
                return items
            items.append(parse_item())
            self.skip_eol()
            tok = self.advance()
            if tok.kind == end:
                return items
            if tok.kind != ",":
                raise self.error(f"',' or '{end}'", tok)

    # --- expressions ---

    def parse_expression(self, precedence: int) -> Node:
        left = self.parse_prefix(self.advance())
        while True:
            nxt = self.peek()
            nxt_prec = PRECEDENCES.get(nxt.kind)
            if nxt_prec is None or nxt_prec <= precedence:
                return left
            self.advance()
            left = self.parse_infix(nxt, left)

    def parse_prefix(self, tok: Token) -> Node:
        kind = tok.kind
        if kind == TK_INT:
            return self.finish(IntLiteral(tok.value), tok)
        if kind == TK_FLOAT:
            return self.finish(FloatLiteral(tok.value), tok)
        if kind == TK_STRING:
            return self.finish(StringLiteral(tok.value), tok)
        if kind == TK_CHAR:
            return self.finish(CharLiteral(tok.value), tok)
        if kind == TK_IDENT:
            return self.finish(Identifier(tok.value), tok)
        if kind in ("true", "false"):
            return self.finish(BoolLiteral(kind == "true"), tok)
        if kind == "null":
            return self.finish(NullLiteral(), tok)
        if kind in ("!", "-"):
            right = self.parse_expression(PREFIX)
            return self.finish(Prefix(kind, right), tok)
        if kind == "(":
            inner = self.parse_expression(LOWEST)
            self.expect(")", "')'")
            return inner
        if kind == "[":
            items = self.parse_sequence("]", lambda: self.parse_expression(LOWEST))
            return self.finish(ArrayLiteral(items), tok)
        if kind == "{":
            pairs = self.parse_sequence("}", self.parse_dict_pair)
            return self.finish(DictLiteral(pairs), tok)
        if kind == "if":
            return self.parse_if(tok)
        if kind == "while":
            self.expect("(", "'('")
            condition = self.parse_expression(LOWEST)
            self.expect(")", "')'")
            body = self.parse_block()
            return self.finish(While(condition, body), tok)
        if kind == "for":
            return self.parse_for(tok)
        if kind == "fn":
            return self.parse_fn_literal(tok)
        if kind == "break":
            return self.finish(Break(), tok)
        if kind == "continue":
            return self.finish(Continue(), tok)
        if kind == "return":
            if self.peek().kind in (TK_EOL, TK_EOF, ";", "}"):
                return self.finish(Return(None), tok)
            value = self.parse_expression(LOWEST)
            return self.finish(Return(value), tok)
        if kind == "use":
            path_tok = self.expect(TK_STRING, "string literal")
            return self.finish(Use(path_tok.value.decode("utf-8")), tok)
        raise self.error("expression", tok)

    def parse_infix(self, tok: Token, left: Node) -> Node:
        kind = tok.kind
        if kind in BINARY_OPERATORS:
            right = self.parse_expression(PRECEDENCES[kind])
            return self.finish(Infix(kind, left, right), left)
        if kind == "(":
            args = self.parse_sequence(")", lambda: self.parse_expression(LOWEST))
            return self.finish(Call(left, args), left)
        if kind == "[":
            index = self.parse_expression(LOWEST)
            self.expect("]", "']'")
            return self.finish(Index(left, index), left)
        if kind == ".":
            key_tok = self.expect(TK_IDENT, "identifier")
            key = self.finish(Identifier(key_tok.value), key_tok)
            return self.finish(DotIndex(left, key), left)
        if kind == "=":
            self.validate_target(left)
            value = self.parse_expression(ASSIGN)
            if isinstance(left, Identifier) and isinstance(value, FunctionLiteral) and value.name is None:
                value.name = left.name
            return self.finish(Assign(left, value), left)
        raise self.error("operator", tok)

    def parse_dict_pair(self) -> Tuple[Node, Node]:
        key = self.parse_expression(LOWEST)
        self.skip_eol()
        self.expect(":", "':'")
        self.skip_eol()
        value = self.parse_expression(LOWEST)
        return (key, value)

    def parse_if(self, start: Token) -> If:
        branches = []
        alternative = None
        while True:
            self.expect("(", "'('")
            condition = self.parse_expression(LOWEST)
            self.expect(")", "')'")
            branches.append((condition, self.parse_block()))
            # `else` may sit on a following line; only consume the newlines if it does.
            offset = 0
            while self.peek(offset).kind == TK_EOL:
                offset += 1
            if self.peek(offset).kind != "else":
                break
            for _ in range(offset + 1):
                self.advance()
            if self.peek().kind == "if":
                self.advance()
                continue
            alternative = self.parse_block()
            break
        return self.finish(If(branches, alternative), start)

    def parse_for(self, start: Token) -> For:
        self.expect("(", "'('")
        initial = self.parse_expression(LOWEST)
        self.expect(";", "';'")
        condition = self.parse_expression(LOWEST)
        self.expect(";", "';'")
        after = self.parse_expression(LOWEST)
        self.expect(")", "')'")
        body = self.parse_block()
        return self.finish(For(initial, condition, after, body), start)

    def parse_fn_literal(self, start: Token) -> FunctionLiteral:
        self.expect("(", "'('")
        seen = set()

        def parse_param():
            tok = self.advance()
            if tok.kind != TK_IDENT:
                raise self.error("parameter name", tok)
            if tok.value in seen:
                raise ParseError(f"duplicate parameter '{tok.value}'", tok.line, tok.col,
                                 expected="parameter name", found=tok.describe())
            seen.add(tok.value)
            return self.finish(Identifier(tok.value), tok)

        params = self.parse_sequence(")", parse_param)
        body = self.parse_block()
        return self.finish(FunctionLiteral(params, body, None), start)

    def validate_target(self, node: Node):
        """Assignment targets: identifier, index, dot-index, or an array pattern of those."""
        if isinstance(node, (Identifier, Index, DotIndex)):
            return
        if isinstance(node, ArrayLiteral):
            for item in node.items:
                self.validate_target(item)
            return
        raise ParseError("invalid assignment target", node.line, node.col,
                         expected="assignment target", found=type(node).__name__)


def parse_or_raise(source: str) -> Program:
    """Lex and parse source, raising the first LexError or ParseError."""
    lexer = Lexer(source)
    tokens = lexer.tokenize()
    return Parser(tokens, lexer.comments).parse_program()


def parse(source: str) -> Tuple[Program, List[Diagnostic]]:
    """Parse without side effects, returning (program, diagnostics).

    On failure the program holds every top-level form that parsed cleanly
    before the error, which is enough for tooling to keep working on the
    rest of the document.
    """
    lexer = Lexer(source)
    try:
        tokens = lexer.tokenize()
    except LexError as e:
        parser = Parser(lexer.tokens + [lexer.eof_token()], lexer.comments)
        try:
            parser.parse_program()
        except ParseError:
            pass
        return parser.partial_program(), [e.to_diagnostic()]
    parser = Parser(tokens, lexer.comments)
    try:
        return parser.parse_program(), []
    except ParseError as e:
        return parser.partial_program(), [e.to_diagnostic()]
    except RecursionError:
        tok = parser.peek()
        e = ParseError("expression nested too deeply", tok.line, tok.col)
        return parser.partial_program(), [e.to_diagnostic()]
