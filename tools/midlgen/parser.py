"""
Parser: recursive-descent parser that builds an AST from a MIDL token stream.

Only the subset of MIDL needed to describe vtable interfaces and the data
types they use is understood: imports, typedefs, enums, structs, constants,
interfaces, libraries, modules and coclasses.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .lexer import (
    Token, TOK_KEYWORD, TOK_IDENT, TOK_NUMBER, TOK_STRING, TOK_SYMBOL,
    TOK_ATTR, TOK_EOF,
)


# ── AST nodes ────────────────────────────────────────────────────────
#
# Nodes are frozen: the generator walks the tree but never mutates or
# reorders it.

@dataclass(frozen=True)
class Attribute:
    name: str
    value: str = ""  # raw text inside the parentheses


@dataclass(frozen=True)
class Param:
    name: str
    type_name: str
    indirections: int = 0
    attributes: Tuple[Attribute, ...] = ()
    array: bool = False

    @property
    def directions(self) -> Tuple[str, ...]:
        """The in/out attributes, with any value, e.g. ("in", "out(retval)")."""
        return tuple(f"{a.name}({a.value})" if a.value else a.name
                     for a in self.attributes if a.name in ("in", "out"))


@dataclass(frozen=True)
class Return:
    type_name: str
    indirections: int = 0


@dataclass(frozen=True)
class Method:
    name: str
    returns: Return
    params: Tuple[Param, ...] = ()


@dataclass(frozen=True)
class Interface:
    name: str
    parent: str = ""  # empty: derives from the root interface
    attributes: Tuple[Attribute, ...] = ()
    methods: Tuple[Method, ...] = ()


@dataclass(frozen=True)
class EnumValue:
    name: str
    value: str = ""  # raw literal, empty when omitted


@dataclass(frozen=True)
class Enum:
    name: str
    values: Tuple[EnumValue, ...] = ()
    aliases: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class StructField:
    name: str
    type_name: str
    indirections: int = 0
    attributes: Tuple[Attribute, ...] = ()
    array_size: Optional[int] = None


@dataclass(frozen=True)
class Struct:
    name: str
    fields: Tuple[StructField, ...] = ()
    # Extra typedef declarators: (name, pointer depth), e.g. *PFOO -> ("PFOO", 1)
    aliases: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class Typedef:
    name: str
    type_name: str
    indirections: int = 0
    attributes: Tuple[Attribute, ...] = ()


@dataclass(frozen=True)
class Constdef:
    name: str
    type_name: str
    value: str


@dataclass(frozen=True)
class Import:
    files: Tuple[str, ...]


@dataclass(frozen=True)
class ImportLib:
    filename: str


@dataclass(frozen=True)
class ModuleConstant:
    name: str
    value: str


@dataclass(frozen=True)
class Module:
    name: str
    nodes: Tuple[object, ...] = ()


@dataclass(frozen=True)
class Library:
    name: str
    attributes: Tuple[Attribute, ...] = ()
    nodes: Tuple[object, ...] = ()


@dataclass(frozen=True)
class CoClass:
    name: str
    attributes: Tuple[Attribute, ...] = ()
    interfaces: Tuple[str, ...] = ()


@dataclass(frozen=True)
class IdlFile:
    nodes: Tuple[object, ...] = field(default_factory=tuple)


# ── Attribute lists ──────────────────────────────────────────────────

_ATTR_RE = re.compile(r"^(\w+)\s*(?:\((.*)\))?$", re.DOTALL)


def _split_top_level(text: str) -> List[str]:
    """Split on commas that are not nested in parentheses or strings."""
    parts: List[str] = []
    depth = 0
    in_string = False
    start = 0
    i = 0
    while i < len(text):
        c = text[i]
        if in_string:
            if c == "\\":
                i += 1
            elif c == '"':
                in_string = False
        elif c == '"':
            in_string = True
        elif c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
        elif c == "," and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return [p.strip() for p in parts if p.strip()]


def parse_attributes(text: str, line: int = 0) -> Tuple[Attribute, ...]:
    """Parse the inside of an attribute list: 'uuid(...), object, helpstring("x")'."""
    attrs = []
    for item in _split_top_level(text):
        m = _ATTR_RE.match(item)
        if not m:
            raise SyntaxError(f"Line {line}: malformed attribute {item!r}")
        value = (m.group(2) or "").strip()
        if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
            value = value[1:-1]
        attrs.append(Attribute(name=m.group(1), value=value))
    return tuple(attrs)


# ── Parser ───────────────────────────────────────────────────────────

# Words that qualify a type without changing its identity.
QUALIFIERS = {"const", "struct", "enum", "volatile", "__RPC_FAR", "__RPC_FAR__"}


class Parser:
    """
    Recursive-descent parser for a MIDL subset.

    Expects a token list produced by ``tokenize()``.  Builds an ``IdlFile``
    whose ``nodes`` keep the declaration order of the source.
    """

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    # ── Token helpers ────────────────────────────────────────────────

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != TOK_EOF:
            self.pos += 1
        return tok

    def expect(self, kind: str, value: Optional[str] = None) -> Token:
        tok = self.advance()
        if tok.kind != kind:
            raise SyntaxError(
                f"Line {tok.line}: expected {kind}"
                f"{f' {value!r}' if value else ''}, got {tok.kind} {tok.value!r}")
        if value is not None and tok.value != value:
            raise SyntaxError(
                f"Line {tok.line}: expected {value!r}, got {tok.value!r}")
        return tok

    def _at_symbol(self, value: str) -> bool:
        tok = self.peek()
        return tok.kind == TOK_SYMBOL and tok.value == value

    def _skip_symbol(self, value: str):
        if self._at_symbol(value):
            self.advance()

    def _attributes(self) -> Tuple[Attribute, ...]:
        attrs: Tuple[Attribute, ...] = ()
        while self.peek().kind == TOK_ATTR:
            tok = self.advance()
            attrs += parse_attributes(tok.value, tok.line)
        return attrs

    def _collect(self, stops: str) -> List[Token]:
        """Consume tokens up to (not including) a top-level symbol in stops."""
        out: List[Token] = []
        depth = 0
        while True:
            tok = self.peek()
            if tok.kind == TOK_EOF:
                raise SyntaxError(f"Line {tok.line}: unexpected end of input")
            if tok.kind == TOK_SYMBOL:
                if depth == 0 and tok.value in stops:
                    return out
                if tok.value == "(":
                    depth += 1
                elif tok.value == ")":
                    depth -= 1
            out.append(self.advance())

    # ── Top-level ────────────────────────────────────────────────────

    def parse(self) -> IdlFile:
        nodes = self._parse_block(top_level=True)
        self.expect(TOK_EOF)
        return IdlFile(nodes=tuple(nodes))

    def _parse_block(self, top_level: bool = False) -> List[object]:
        nodes: List[object] = []
        while True:
            tok = self.peek()
            if tok.kind == TOK_EOF:
                if not top_level:
                    raise SyntaxError(f"Line {tok.line}: unexpected end of input")
                return nodes
            if tok.kind == TOK_SYMBOL and tok.value == "}" and not top_level:
                return nodes
            if tok.kind == TOK_SYMBOL and tok.value == ";":
                self.advance()
                continue
            nodes.extend(self._parse_declaration())

    def _parse_declaration(self) -> List[object]:
        attrs = self._attributes()
        tok = self.peek()
        if tok.kind != TOK_KEYWORD:
            raise SyntaxError(
                f"Line {tok.line}: expected a declaration, got {tok.value!r}")

        if tok.value == "import":
            return [self._parse_import()]
        if tok.value == "importlib":
            return [self._parse_importlib()]
        if tok.value == "cpp_quote":
            self._parse_cpp_quote()
            return []
        if tok.value == "interface":
            return [self._parse_interface(attrs)]
        if tok.value == "typedef":
            return self._parse_typedef()
        if tok.value == "enum":
            self.advance()
            name = self.expect(TOK_IDENT).value
            node = Enum(name=name, values=self._parse_enum_body())
            self.expect(TOK_SYMBOL, ";")
            return [node]
        if tok.value == "struct":
            self.advance()
            name = self.expect(TOK_IDENT).value
            node = Struct(name=name, fields=self._parse_struct_body())
            self.expect(TOK_SYMBOL, ";")
            return [node]
        if tok.value == "const":
            return [self._parse_const()]
        if tok.value == "library":
            return [self._parse_library(attrs)]
        if tok.value == "module":
            return [self._parse_module()]
        if tok.value == "coclass":
            return [self._parse_coclass(attrs)]

        raise SyntaxError(f"Line {tok.line}: unexpected keyword {tok.value!r}")

    # ── Imports / quotes ─────────────────────────────────────────────

    def _parse_import(self) -> Import:
        self.expect(TOK_KEYWORD, "import")
        files = [_unquote(self.expect(TOK_STRING).value)]
        while self._at_symbol(","):
            self.advance()
            files.append(_unquote(self.expect(TOK_STRING).value))
        self.expect(TOK_SYMBOL, ";")
        return Import(files=tuple(files))

    def _parse_importlib(self) -> ImportLib:
        self.expect(TOK_KEYWORD, "importlib")
        self.expect(TOK_SYMBOL, "(")
        filename = _unquote(self.expect(TOK_STRING).value)
        self.expect(TOK_SYMBOL, ")")
        self.expect(TOK_SYMBOL, ";")
        return ImportLib(filename=filename)

    def _parse_cpp_quote(self):
        self.expect(TOK_KEYWORD, "cpp_quote")
        self.expect(TOK_SYMBOL, "(")
        self.expect(TOK_STRING)
        self.expect(TOK_SYMBOL, ")")

    # ── Interfaces ───────────────────────────────────────────────────

    def _parse_interface(self, attrs: Tuple[Attribute, ...]) -> Interface:
        self.expect(TOK_KEYWORD, "interface")
        name = self.expect(TOK_IDENT).value

        # Forward declaration.
        if self._at_symbol(";"):
            self.advance()
            return Interface(name=name, attributes=attrs)

        parent = ""
        if self._at_symbol(":"):
            self.advance()
            parent = self.expect(TOK_IDENT).value

        self.expect(TOK_SYMBOL, "{")
        methods: List[Method] = []
        while not self._at_symbol("}"):
            if self.peek().kind == TOK_KEYWORD and self.peek().value == "cpp_quote":
                self._parse_cpp_quote()
                continue
            methods.append(self._parse_method())
        self.expect(TOK_SYMBOL, "}")
        self._skip_symbol(";")

        return Interface(name=name, parent=parent, attributes=attrs,
                         methods=tuple(methods))

    def _parse_method(self) -> Method:
        self._attributes()  # [id(1), propget] etc. carry no layout information
        line = self.peek().line
        head = self._collect("(;")
        if not self._at_symbol("("):
            raise SyntaxError(f"Line {line}: expected a method declaration")
        ret_type, ret_ind, name, _ = _split_declarator(head, line)
        if not name:
            raise SyntaxError(f"Line {line}: method has no name")

        params = self._parse_params()
        self._attributes()
        self.expect(TOK_SYMBOL, ";")
        return Method(name=name,
                      returns=Return(type_name=ret_type, indirections=ret_ind),
                      params=tuple(params))

    def _parse_params(self) -> List[Param]:
        self.expect(TOK_SYMBOL, "(")
        params: List[Param] = []
        while not self._at_symbol(")"):
            attrs = self._attributes()
            line = self.peek().line
            tokens = self._collect(",)")
            if not tokens:
                raise SyntaxError(f"Line {line}: empty parameter")
            if len(tokens) == 1 and tokens[0].value == "void" and not params:
                break
            type_name, indirections, name, array = _split_declarator(tokens, line)
            params.append(Param(name=name or f"p{len(params)}",
                                type_name=type_name,
                                indirections=indirections,
                                attributes=attrs,
                                array=array is not None))
            self._skip_symbol(",")
        self.expect(TOK_SYMBOL, ")")
        return params

    # ── Typedefs, enums, structs ─────────────────────────────────────

    def _parse_typedef(self) -> List[object]:
        self.expect(TOK_KEYWORD, "typedef")
        attrs = self._attributes()
        tok = self.peek()

        # typedef enum [tag] { ... } Name, *PName;
        # typedef struct [tag] { ... } Name, *PName;
        if tok.kind == TOK_KEYWORD and tok.value in ("enum", "struct"):
            has_tag = self.peek(1).kind == TOK_IDENT
            opens = self.peek(2 if has_tag else 1)
            if opens.kind == TOK_SYMBOL and opens.value == "{":
                self.advance()
                tag = self.advance().value if has_tag else ""
                if tok.value == "enum":
                    body = self._parse_enum_body()
                else:
                    body = self._parse_struct_body()
                name, aliases = self._parse_declarator_list(tag, tok.line)
                if tok.value == "enum":
                    return [Enum(name=name, values=body, aliases=aliases)]
                return [Struct(name=name, fields=body, aliases=aliases)]

        line = tok.line
        first = self._collect(",;")
        type_name, indirections, name, array = _split_declarator(first, line)
        if not name:
            raise SyntaxError(f"Line {line}: typedef has no name")
        if array is not None:
            raise SyntaxError(f"Line {line}: array typedefs are not supported")
        nodes: List[object] = [Typedef(name=name, type_name=type_name,
                                       indirections=indirections,
                                       attributes=attrs)]
        while self._at_symbol(","):
            self.advance()
            alias, alias_ind = _alias_declarator(self._collect(",;"), line)
            nodes.append(Typedef(name=alias, type_name=type_name,
                                 indirections=alias_ind, attributes=attrs))
        self.expect(TOK_SYMBOL, ";")
        return nodes

    def _parse_declarator_list(self, tag: str,
                               line: int) -> Tuple[str, Tuple[Tuple[str, int], ...]]:
        """Parse 'Name, *PName;' after a typedef'd enum or struct body."""
        declarators: List[Tuple[str, int]] = []
        while not self._at_symbol(";"):
            declarators.append(_alias_declarator(self._collect(",;"), line))
            self._skip_symbol(",")
        self.expect(TOK_SYMBOL, ";")

        plain = [d for d in declarators if d[1] == 0]
        if plain:
            name = plain[0][0]
        elif tag:
            name = tag
        else:
            raise SyntaxError(f"Line {line}: typedef has no name")
        aliases = tuple(d for d in declarators if d[0] != name)
        if tag and tag != name:
            aliases = ((tag, 0),) + aliases
        return name, aliases

    def _parse_enum_body(self) -> Tuple[EnumValue, ...]:
        self.expect(TOK_SYMBOL, "{")
        values: List[EnumValue] = []
        while not self._at_symbol("}"):
            self._attributes()
            name = self.expect(TOK_IDENT).value
            value = ""
            if self._at_symbol("="):
                eq = self.advance()
                tokens = self._collect(",}")
                if not tokens:
                    raise SyntaxError(f"Line {eq.line}: enum value {name!r} has no literal")
                value = _join(tokens)
            values.append(EnumValue(name=name, value=value))
            self._skip_symbol(",")
        self.expect(TOK_SYMBOL, "}")
        return tuple(values)

    def _parse_struct_body(self) -> Tuple[StructField, ...]:
        self.expect(TOK_SYMBOL, "{")
        fields: List[StructField] = []
        while not self._at_symbol("}"):
            attrs = self._attributes()
            line = self.peek().line
            tokens = self._collect(";")
            type_name, indirections, name, array = _split_declarator(tokens, line)
            if not name:
                raise SyntaxError(f"Line {line}: struct field has no name")
            # An unsized array is a pointer to its first element.
            if array == 0:
                indirections += 1
                array = None
            fields.append(StructField(name=name, type_name=type_name,
                                      indirections=indirections,
                                      attributes=attrs, array_size=array))
            self.expect(TOK_SYMBOL, ";")
        self.expect(TOK_SYMBOL, "}")
        return tuple(fields)

    # ── Constants, libraries, modules, coclasses ─────────────────────

    def _parse_const(self) -> Constdef:
        kw = self.expect(TOK_KEYWORD, "const")
        head = self._collect("=;")
        type_name, indirections, name, _ = _split_declarator(head, kw.line)
        if not name:
            raise SyntaxError(f"Line {kw.line}: constant has no name")
        self.expect(TOK_SYMBOL, "=")
        tokens = self._collect(";")
        if not tokens:
            raise SyntaxError(f"Line {kw.line}: constant {name!r} has no value")
        self.expect(TOK_SYMBOL, ";")
        return Constdef(name=name, type_name=type_name + "*" * indirections,
                        value=_join(tokens))

    def _parse_library(self, attrs: Tuple[Attribute, ...]) -> Library:
        self.expect(TOK_KEYWORD, "library")
        name = self.expect(TOK_IDENT).value
        self.expect(TOK_SYMBOL, "{")
        nodes = self._parse_block()
        self.expect(TOK_SYMBOL, "}")
        self._skip_symbol(";")
        return Library(name=name, attributes=attrs, nodes=tuple(nodes))

    def _parse_module(self) -> Module:
        self.expect(TOK_KEYWORD, "module")
        name = self.expect(TOK_IDENT).value
        self.expect(TOK_SYMBOL, "{")
        nodes: List[object] = []
        while not self._at_symbol("}"):
            self._attributes()
            tok = self.peek()
            if tok.kind != TOK_KEYWORD or tok.value != "const":
                raise SyntaxError(
                    f"Line {tok.line}: only constants are supported in modules")
            const = self._parse_const()
            nodes.append(ModuleConstant(name=const.name, value=const.value))
        self.expect(TOK_SYMBOL, "}")
        self._skip_symbol(";")
        return Module(name=name, nodes=tuple(nodes))

    def _parse_coclass(self, attrs: Tuple[Attribute, ...]) -> CoClass:
        self.expect(TOK_KEYWORD, "coclass")
        name = self.expect(TOK_IDENT).value
        self.expect(TOK_SYMBOL, "{")
        interfaces: List[str] = []
        while not self._at_symbol("}"):
            self._attributes()
            self.expect(TOK_KEYWORD, "interface")
            interfaces.append(self.expect(TOK_IDENT).value)
            self.expect(TOK_SYMBOL, ";")
        self.expect(TOK_SYMBOL, "}")
        self._skip_symbol(";")
        return CoClass(name=name, attributes=attrs, interfaces=tuple(interfaces))


# ── Declarator helpers ───────────────────────────────────────────────

def _split_declarator(tokens: List[Token],
                      line: int) -> Tuple[str, int, str, Optional[int]]:
    """
    Split 'const unsigned long *name[4]' into its parts.

    Returns (type name, pointer depth, declarator name, array size) where the
    name is "" for an unnamed declarator and the array size is None when the
    declarator is not an array, 0 for an unsized '[]' array.
    """
    array: Optional[int] = None
    while tokens and tokens[-1].kind == TOK_ATTR:
        size = tokens[-1].value.strip()
        if array is not None:
            raise SyntaxError(f"Line {line}: multi-dimensional arrays are not supported")
        if size and not size.isdigit():
            raise SyntaxError(f"Line {line}: array size must be a number, got {size!r}")
        array = int(size) if size else 0
        tokens = tokens[:-1]

    words: List[str] = []
    pointers = 0
    for tok in tokens:
        if tok.kind == TOK_SYMBOL and tok.value == "*":
            pointers += 1
        elif tok.kind == TOK_SYMBOL and tok.value in "()":
            raise SyntaxError(f"Line {tok.line}: function pointers are not supported")
        elif tok.value in QUALIFIERS:
            continue
        elif tok.kind == TOK_IDENT:
            words.append(tok.value)
        else:
            raise SyntaxError(f"Line {tok.line}: unexpected {tok.value!r} in declaration")

    if not words:
        raise SyntaxError(f"Line {line}: missing type name")
    name = words.pop() if len(words) > 1 else ""
    return " ".join(words), pointers, name, array


def _alias_declarator(tokens: List[Token], line: int) -> Tuple[str, int]:
    """Parse a trailing typedef declarator such as '*PFOO' or 'FOO'."""
    pointers = sum(1 for t in tokens if t.kind == TOK_SYMBOL and t.value == "*")
    names = [t.value for t in tokens
             if t.kind == TOK_IDENT and t.value not in QUALIFIERS]
    if len(names) != 1 or pointers + 1 != len(tokens):
        raise SyntaxError(f"Line {line}: malformed typedef declarator")
    return names[0], pointers


def _join(tokens: List[Token]) -> str:
    """Render an expression's tokens back to source text."""
    out = ""
    prev: Optional[Token] = None
    unary = False
    for tok in tokens:
        if prev is None or unary or prev.value in ("(", "~", "!"):
            sep = ""
        elif tok.value in (")", ","):
            sep = ""
        elif tok.value == "(" and prev.kind == TOK_IDENT:
            sep = ""
        else:
            sep = " "
        # A sign directly after an operator (or at the start) binds to its operand.
        unary = tok.value in ("-", "+") and (
            prev is None or (prev.kind == TOK_SYMBOL and prev.value != ")"))
        out += sep + tok.value
        prev = tok
    return out


def _unquote(literal: str) -> str:
    if literal.startswith("L"):
        literal = literal[1:]
    return literal[1:-1]
