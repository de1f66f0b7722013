"""AOC tokenizer: turns source text into a flat list of positioned tokens."""

from typing import List, Optional

from aoc.aoc_datatypes import Comment, LexError, I64_MAX

# Token kinds for literals and names. Operators, delimiters and keywords
# use their own text as the kind (e.g. '+', '==', 'while').
TK_INT = "INT"
TK_FLOAT = "FLOAT"
TK_STRING = "STRING"
TK_CHAR = "CHAR"
TK_IDENT = "IDENT"
TK_EOL = "EOL"
TK_EOF = "EOF"

KEYWORDS = {
    "true", "false", "null", "if", "else", "while", "for",
    "break", "continue", "return", "fn", "use",
}

TWO_CHAR_OPS = {"<=", ">=", "==", "!="}

SINGLE_OPS = set("[](){}+-*/%&|!<>=;,.:")

STRING_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}
CHAR_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", "'": "'"}

OPENERS = {"(": ")", "[": "]", "{": "}"}


def shorten(text: str, limit: int = 32) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class Token:
    __slots__ = ("kind", "value", "text", "line", "col", "end_line", "end_col")

    def __init__(self, kind: str, value, text: str, line: int, col: int, end_line: int, end_col: int):
        self.kind = kind
        self.value = value
        self.text = text
        self.line = line
        self.col = col
        self.end_line = end_line
        self.end_col = end_col

    def describe(self) -> str:
        """Human-readable form used in 'expected X, found Y' messages."""
        if self.kind == TK_EOF:
            return "end of input"
        if self.kind == TK_EOL:
            return "end of line"
        if self.kind in (TK_INT, TK_FLOAT, TK_IDENT):
            return f"{self.kind.lower()} '{self.text}'"
        if self.kind == TK_STRING:
            return "string literal"
        if self.kind == TK_CHAR:
            return "char literal"
        return f"'{self.text}'"

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.value!r}, {self.line}:{self.col})"


class Lexer:
    """Tokenizes AOC source.

    Newlines produce EOL tokens except while the innermost open bracket is
    `(` or `[`; there they are plain whitespace. `//` comments are collected
    into `self.comments` and never reach the token stream.
    """
    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.col = 1
        self.brackets: List[str] = []
        self.tokens: List[Token] = []
        self.comments: List[Comment] = []

    def tokenize(self) -> List[Token]:
        while True:
            tok = self.next_token()
            self.tokens.append(tok)
            if tok.kind == TK_EOF:
                return self.tokens

    def eof_token(self) -> Token:
        return Token(TK_EOF, None, "", self.line, self.col, self.line, self.col)

    # --- character helpers ---

    def _peek(self, offset: int = 0) -> Optional[str]:
        i = self.pos + offset
        return self.source[i] if i < len(self.source) else None

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _token(self, kind, value, start: int, line: int, col: int) -> Token:
        return Token(kind, value, self.source[start:self.pos], line, col, self.line, self.col)

    # --- main loop ---

    def next_token(self) -> Token:
        while True:
            ch = self._peek()
            if ch is None:
                return self.eof_token()
            if ch == "\n":
                if self.brackets and self.brackets[-1] in "([":
                    self._advance()
                    continue
                line, col = self.line, self.col
                self._advance()
                return Token(TK_EOL, None, "\n", line, col, line, col + 1)
            if ch.isspace():
                self._advance()
                continue
            if ch == "/" and self._peek(1) == "/":
                self._read_comment()
                continue
            break

        line, col, start = self.line, self.col, self.pos

        if "0" <= ch <= "9":
            return self._read_number(start, line, col)
        if ch.isalpha() or ch == "_":
            return self._read_ident(start, line, col)
        if ch == '"':
            return self._read_string(start, line, col)
        if ch == "'":
            return self._read_char(start, line, col)

        two = self.source[self.pos:self.pos + 2]
        if two in TWO_CHAR_OPS:
            self._advance()
            self._advance()
            return self._token(two, None, start, line, col)

        if ch in SINGLE_OPS:
            self._advance()
            if ch in OPENERS:
                self.brackets.append(ch)
            elif ch in ")]}" and self.brackets:
                self.brackets.pop()
            return self._token(ch, None, start, line, col)

        raise LexError(f"invalid character '{ch}'", line, col)

    def _read_comment(self):
        line, col, start = self.line, self.col, self.pos
        while self._peek() is not None and self._peek() != "\n":
            self._advance()
        text = self.source[start + 2:self.pos].strip()
        self.comments.append(Comment(text, line=line, col=col, end_line=self.line, end_col=self.col))

    def _read_number(self, start: int, line: int, col: int) -> Token:
        while True:
            ch = self._peek()
            if ch is not None and "0" <= ch <= "9":
                self._advance()
            elif ch == "." and (self._peek(1) or "").isdigit():
                self._advance()
            else:
                break
        text = self.source[start:self.pos]
        dots = text.count(".")
        if dots > 1:
            raise LexError(f"invalid number: {shorten(text)}", line, col)
        if dots == 1:
            return self._token(TK_FLOAT, float(text), start, line, col)
        digits = text.lstrip("0") or "0"
        # i64 needs at most 19 digits; int() also refuses very long digit strings
        if len(digits) > 19 or int(digits) > I64_MAX:
            raise LexError(f"invalid number: {shorten(text)}", line, col)
        return self._token(TK_INT, int(digits), start, line, col)

    def _read_ident(self, start: int, line: int, col: int) -> Token:
        while True:
            ch = self._peek()
            if ch is not None and (ch.isalnum() or ch == "_"):
                self._advance()
            else:
                break
        text = self.source[start:self.pos]
        if text in KEYWORDS:
            return self._token(text, None, start, line, col)
        return self._token(TK_IDENT, text, start, line, col)

    def _read_string(self, start: int, line: int, col: int) -> Token:
        self._advance()  # opening quote
        chars = []
        while True:
            ch = self._peek()
            if ch is None or ch == "\n":
                raise LexError("unterminated string", line, col)
            if ch == '"':
                self._advance()
                break
            if ch == "\\":
                esc_line, esc_col = self.line, self.col
                self._advance()
                nxt = self._peek()
                if nxt is None:
                    raise LexError("unterminated string", line, col)
                if nxt not in STRING_ESCAPES:
                    raise LexError(f"invalid escape sequence '\\{nxt}'", esc_line, esc_col)
                self._advance()
                chars.append(STRING_ESCAPES[nxt])
                continue
            chars.append(self._advance())
        return self._token(TK_STRING, "".join(chars).encode("utf-8"), start, line, col)

    def _read_char(self, start: int, line: int, col: int) -> Token:
        self._advance()  # opening quote
        ch = self._peek()
        if ch is None or ch == "\n":
            raise LexError("unterminated char literal", line, col)
        if ch == "'":
            raise LexError("empty char literal", line, col)
        if ch == "\\":
            esc_line, esc_col = self.line, self.col
            self._advance()
            nxt = self._peek()
            if nxt is None:
                raise LexError("unterminated char literal", line, col)
            if nxt not in CHAR_ESCAPES:
                raise LexError(f"invalid escape sequence '\\{nxt}'", esc_line, esc_col)
            self._advance()
            value = CHAR_ESCAPES[nxt]
        else:
            value = self._advance()
        if self._peek() != "'":
            raise LexError("unterminated char literal", line, col)
        self._advance()
        encoded = value.encode("utf-8")
        if len(encoded) != 1:
            raise LexError(f"char literal '{value}' is not a single byte", line, col)
        return self._token(TK_CHAR, encoded[0], start, line, col)


def tokenize(source: str) -> List[Token]:
    """Tokenize AOC source, raising LexError on the first malformed token."""
    return Lexer(source).tokenize()
