"""
Lexer: tokenizes MIDL source text into a stream of tokens.
"""

from dataclasses import dataclass
from typing import List

# Token kinds.
TOK_KEYWORD = "KEYWORD"
TOK_IDENT   = "IDENT"
TOK_NUMBER  = "NUMBER"
TOK_STRING  = "STRING"   # "text" or L"text", value keeps the L prefix
TOK_SYMBOL  = "SYMBOL"
TOK_ATTR    = "ATTR"     # e.g. [uuid(...), object], [in], [out, retval]
TOK_EOF     = "EOF"

# Words treated as keywords by the parser.
KEYWORDS = {
    "import", "importlib", "interface", "typedef", "enum", "struct",
    "const", "library", "module", "coclass", "cpp_quote",
}

SYMBOLS = "{}();,*=:<>|&^~+-/%.!?"


@dataclass
class Token:
    kind: str
    value: str
    line: int


def _scan_string(text: str, i: int, line: int) -> int:
    """Return the index just past the closing quote of the string at text[i]."""
    j = i + 1
    while j < len(text) and text[j] != '"':
        if text[j] == "\\":
            j += 1
        elif text[j] == "\n":
            raise SyntaxError(f"Line {line}: unterminated string literal")
        j += 1
    if j >= len(text):
        raise SyntaxError(f"Line {line}: unterminated string literal")
    return j + 1


def _scan_attribute(text: str, i: int, line: int) -> int:
    """Return the index of the ']' closing the attribute list opened at text[i].

    Attribute lists may contain strings and nested brackets, e.g.
    [helpstring("a]b"), size_is(n)].
    """
    depth = 0
    j = i
    while j < len(text):
        c = text[j]
        if c == '"':
            j = _scan_string(text, j, line)
            continue
        if c == "[":
            depth += 1
        elif c == "]":
            depth -= 1
            if depth == 0:
                return j
        j += 1
    raise SyntaxError(f"Line {line}: unterminated attribute")


def tokenize(text: str) -> List[Token]:
    """
    Convert MIDL source text into a list of tokens.

    Handles: keywords, identifiers, numbers (decimal, hex, with integer
    suffixes), string literals, symbols, bracketed attribute lists, single-line
    comments (//), block comments (/* ... */), and whitespace.
    Raises SyntaxError on unterminated constructs, preprocessor directives or
    unexpected characters.
    """
    tokens: List[Token] = []
    i = 0
    line = 1
    n = len(text)
    at_line_start = True

    while i < n:
        # Newlines
        if text[i] == "\n":
            line += 1
            i += 1
            at_line_start = True
            continue

        # Whitespace
        if text[i] in " \t\r\f":
            i += 1
            continue

        if text[i] == "#" and at_line_start:
            raise SyntaxError(f"Line {line}: preprocessor directives are not supported")
        at_line_start = False

        # Single-line comment
        if text[i:i+2] == "//":
            while i < n and text[i] != "\n":
                i += 1
            continue

        # Block comment
        if text[i:i+2] == "/*":
            end = text.find("*/", i + 2)
            if end == -1:
                raise SyntaxError(f"Line {line}: unterminated block comment")
            line += text[i:end+2].count("\n")
            i = end + 2
            continue

        # Attribute list: [something, other(value)]
        if text[i] == "[":
            j = _scan_attribute(text, i, line)
            tokens.append(Token(TOK_ATTR, text[i+1:j].strip(), line))
            line += text[i:j].count("\n")
            i = j + 1
            continue

        # String literal, optionally wide
        if text[i] == '"' or text[i:i+2] == 'L"':
            start = i
            if text[i] == "L":
                i += 1
            j = _scan_string(text, i, line)
            tokens.append(Token(TOK_STRING, text[start:j], line))
            i = j
            continue

        # Number
        if text[i].isdigit():
            j = i
            if text[i:i+2].lower() == "0x":
                j += 2
                while j < n and text[j] in "0123456789abcdefABCDEF":
                    j += 1
            else:
                while j < n and (text[j].isdigit() or text[j] == "."):
                    j += 1
            while j < n and text[j] in "uUlL":
                j += 1
            tokens.append(Token(TOK_NUMBER, text[i:j], line))
            i = j
            continue

        # Identifier / keyword
        if text[i].isalpha() or text[i] == "_":
            j = i
            while j < n and (text[j].isalnum() or text[j] == "_"):
                j += 1
            word = text[i:j]
            kind = TOK_KEYWORD if word in KEYWORDS else TOK_IDENT
            tokens.append(Token(kind, word, line))
            i = j
            continue

        # Two-character shift operators used in enum values.
        if text[i:i+2] in ("<<", ">>"):
            tokens.append(Token(TOK_SYMBOL, text[i:i+2], line))
            i += 2
            continue

        if text[i] in SYMBOLS:
            tokens.append(Token(TOK_SYMBOL, text[i], line))
            i += 1
            continue

        raise SyntaxError(f"Line {line}: unexpected character '{text[i]}'")

    tokens.append(Token(TOK_EOF, "", line))
    return tokens
