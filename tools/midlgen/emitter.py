"""
Go emitter: turns a parsed MIDL file into one Go source file.

Each top-level node is emitted in input order as a ``Chunk`` of lines plus
the imports those lines need. The file emitter then writes the header,
package clause, one sorted import block, the shared UTF-16 encoder, and
every chunk.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from .errors import EncodingError
from .imports import (
    Imports, NO_IMPORTS, OLE, TEXT_UNICODE, UNSAFE, import_block, merge,
)
from .layout import InterfaceRegistry, marker_targets
from .marshal import TypeContext, plan_call
from .parser import (
    Constdef, CoClass, Enum, IdlFile, Import, ImportLib, Interface, Library,
    Method, Module, ModuleConstant, Struct, Typedef,
)
from .types import CONST_TYPES, TypeMapper, go_ident, go_local

GENERATOR_NAME = "midlgen"

ENCODER_DECL = ("var utf16Encoder = "
                "unicode.UTF16(unicode.LittleEndian, unicode.IgnoreBOM).NewEncoder()")

# 0x10L, 5u, 1UL -> Go has no integer suffixes.
_INT_SUFFIX_RE = re.compile(r"\b(0[xX][0-9a-fA-F]+|\d+)[uUlL]+\b")


@dataclass(frozen=True)
class Chunk:
    lines: Tuple[str, ...] = ()
    imports: Imports = NO_IMPORTS


EMPTY = Chunk()


def go_literal(value: str) -> str:
    """Rewrite a MIDL constant expression as Go source."""
    return _INT_SUFFIX_RE.sub(r"\1", value)


def collect_type_context(idl: IdlFile, base_interface: str = "IUnknown") -> TypeContext:
    """Gather the typedefs, structs and interfaces declared anywhere in the document."""
    typedefs: Dict[str, Tuple[str, int]] = {}
    structs: Set[str] = set()
    interfaces: List[Interface] = []

    def walk(nodes):
        for node in nodes:
            if isinstance(node, (Library, Module)):
                walk(node.nodes)
            elif isinstance(node, Interface):
                interfaces.append(node)
            elif isinstance(node, Typedef):
                typedefs[node.name] = (node.type_name, node.indirections)
            elif isinstance(node, Struct):
                structs.add(node.name)
                for alias, depth in node.aliases:
                    typedefs[alias] = (node.name, depth)
            elif isinstance(node, Enum):
                for alias, depth in node.aliases:
                    typedefs[alias] = (node.name, depth)

    walk(idl.nodes)
    return TypeContext(typedefs=typedefs, structs=frozenset(structs),
                       markers=marker_targets(interfaces, base_interface))


class GoEmitter:
    """Emits the Go declarations for one MIDL document."""

    def __init__(self, package: str, mapper: Optional[TypeMapper] = None,
                 base_interface: str = "IUnknown", source_name: str = ""):
        self.package = package
        self.mapper = mapper or TypeMapper()
        self.source_name = source_name
        self.registry = InterfaceRegistry(base_interface)
        self.ctx = TypeContext(typedefs={}, structs=frozenset())
        self.interfaces: List[str] = []

    # ── File ─────────────────────────────────────────────────────────

    def emit_file(self, idl: IdlFile) -> str:
        """Return the complete, unformatted Go source for idl."""
        self.ctx = collect_type_context(idl, self.registry.base_interface)
        chunks = [self.emit_node(node) for node in idl.nodes]
        imports = merge({TEXT_UNICODE}, *(c.imports for c in chunks))

        if self.source_name:
            header = f"// Code generated by {GENERATOR_NAME} from {self.source_name}. DO NOT EDIT."
        else:
            header = f"// Code generated by {GENERATOR_NAME}. DO NOT EDIT."

        lines = [header, "", f"package {self.package}", ""]
        lines.extend(import_block(imports))
        lines.extend(["", ENCODER_DECL])
        for chunk in chunks:
            if chunk.lines:
                lines.append("")
                lines.extend(chunk.lines)
        lines.append("")
        return "\n".join(lines)

    def emit_node(self, node) -> Chunk:
        if isinstance(node, Interface):
            return self.emit_interface(node)
        if isinstance(node, Enum):
            return self.emit_enum(node)
        if isinstance(node, Struct):
            return self.emit_struct(node)
        if isinstance(node, Typedef):
            return self.emit_typedef(node)
        if isinstance(node, Constdef):
            return self.emit_const(node)
        if isinstance(node, Library):
            return self.emit_library(node)
        if isinstance(node, Module):
            return self.emit_module(node)
        if isinstance(node, ModuleConstant):
            return self.emit_module_constant(node)
        if isinstance(node, (Import, ImportLib, CoClass)):
            return EMPTY
        raise TypeError(f"unexpected node {type(node).__name__}")

    def go_type(self, type_name: str, indirections: int = 0) -> Tuple[str, Imports]:
        """Spell a MIDL type with pointer depth as a Go type expression.

        void becomes the zero-size struct{}, and a pointer to void becomes
        unsafe.Pointer since Go has no void type to point at. An interface
        that never gets methods is spelled as the type standing in for it.
        """
        type_name = self.ctx.markers.get(type_name, type_name)
        go, imports = self.mapper.map_type(type_name)
        if go != "void":
            return "*" * indirections + go, imports
        if indirections == 0:
            return "struct{}", imports
        return "*" * (indirections - 1) + "unsafe.Pointer", merge(imports, {UNSAFE})

    # ── Containers ───────────────────────────────────────────────────

    def _emit_children(self, banner: str, nodes) -> Chunk:
        lines = [banner]
        imports = []
        for node in nodes:
            chunk = self.emit_node(node)
            if chunk.lines:
                lines.append("")
                lines.extend(chunk.lines)
                imports.append(chunk.imports)
        return Chunk(lines=tuple(lines), imports=merge(*imports))

    def emit_library(self, node: Library) -> Chunk:
        return self._emit_children(f"// Library {node.name}", node.nodes)

    def emit_module(self, node: Module) -> Chunk:
        return self._emit_children(f"// Module {node.name}", node.nodes)

    # ── Data types ───────────────────────────────────────────────────

    def emit_enum(self, node: Enum) -> Chunk:
        """
        Enums become a named int and a const block.

        The first value starts an iota run when its literal is empty or 0, and
        later empty literals continue it as bare names. Once an explicit literal
        breaks the run, Go would repeat the previous expression for a bare name,
        so the following value is spelled out as its predecessor plus one.
        """
        name = go_ident(node.name)
        lines = [f"type {name} int", "", "const ("]
        in_iota_run = False
        prev = ""
        for i, v in enumerate(node.values):
            value_name = go_ident(v.name)
            if i == 0 and v.value in ("", "0"):
                lines.append(f"\t{value_name} {name} = iota")
                in_iota_run = True
            elif v.value == "":
                if in_iota_run:
                    lines.append(f"\t{value_name}")
                else:
                    lines.append(f"\t{value_name} {name} = {prev} + 1")
            else:
                lines.append(f"\t{value_name} {name} = {go_literal(v.value)}")
                in_iota_run = False
            prev = value_name
        lines.append(")")
        return Chunk(lines=tuple(lines + self._alias_lines(node.name, node.aliases)))

    def emit_struct(self, node: Struct) -> Chunk:
        lines = [f"type {go_ident(node.name)} struct {{"]
        imports = []
        for f in node.fields:
            go, imps = self.go_type(f.type_name, f.indirections)
            imports.append(imps)
            array = f"[{f.array_size}]" if f.array_size is not None else ""
            lines.append(f"\t{go_ident(f.name)} {array}{go}")
        lines.append("}")
        lines.extend(self._alias_lines(node.name, node.aliases))
        return Chunk(lines=tuple(lines), imports=merge(*imports))

    def _alias_lines(self, target: str, aliases) -> List[str]:
        lines = []
        for alias, depth in aliases:
            if depth:
                lines.append(f"type {go_ident(alias)} {'*' * depth}{go_ident(target)}")
            else:
                lines.append(f"type {go_ident(alias)} = {go_ident(target)}")
        if lines:
            lines.insert(0, "")
        return lines

    def emit_typedef(self, node: Typedef) -> Chunk:
        go, imports = self.go_type(node.type_name, node.indirections)
        return Chunk(lines=(f"type {go_ident(node.name)} {go}",),
                     imports=imports)

    def emit_const(self, node: Constdef) -> Chunk:
        value = self._const_value(node.name, node.value)
        go, _ = self.mapper.map_type(node.type_name)
        if go in CONST_TYPES:
            return Chunk(lines=(f"const {go_ident(node.name)} {go} = {value}",))
        return Chunk(lines=(f"const {go_ident(node.name)} = {value}",))

    def emit_module_constant(self, node: ModuleConstant) -> Chunk:
        value = self._const_value(node.name, node.value)
        return Chunk(lines=(f"const {go_ident(node.name)} = {value}",))

    def _const_value(self, name: str, value: str) -> str:
        if value.startswith('L"'):
            text = value[2:-1]
            try:
                text.encode("utf-16-le")
            except UnicodeEncodeError as e:
                raise EncodingError(
                    f"constant {name!r}: text cannot be encoded as UTF-16: {e}") from e
            return value[1:]
        if value.startswith('"'):
            try:
                value.encode("utf-8")
            except UnicodeEncodeError as e:
                raise EncodingError(
                    f"constant {name!r}: text cannot be encoded as UTF-8: {e}") from e
            return value
        return go_literal(value)

    # ── Interfaces ───────────────────────────────────────────────────

    def emit_interface(self, node: Interface) -> Chunk:
        layout = self.registry.register(node)
        if layout is None:
            return EMPTY
        self.interfaces.append(node.name)

        name = go_ident(node.name)
        parent = layout.parent
        vtbl = f"{name}Vtbl"
        lines = [
            "/////////////////////////////////////////",
            f"// {node.name}",
            "",
            f"type {vtbl} struct {{",
            f"\t{parent}Vtbl",
        ]
        for slot in layout.own_slots:
            comment = f" // slot {slot.index}" if slot.index is not None else ""
            lines.append(f"\t{go_ident(slot.method)} uintptr{comment}")
        lines.extend([
            "}",
            "",
            f"type {name} struct {{",
            f"\t{parent}",
            "}",
            "",
            f"// VTable reinterprets the object's vtable pointer as a *{vtbl}.",
            "// Nothing checks that the object really implements that layout.",
            f"func (v *{name}) VTable() *{vtbl} {{",
            f"\treturn (*{vtbl})(unsafe.Pointer(v.RawVTable))",
            "}",
        ])

        imports = [layout.imports, {OLE}]
        for method in node.methods:
            stub, stub_imports = self._emit_method(name, method)
            lines.append("")
            lines.extend(stub)
            imports.append(stub_imports)
        return Chunk(lines=tuple(lines), imports=merge(*imports))

    def _emit_method(self, iface: str, method: Method) -> Tuple[List[str], Imports]:
        plan = plan_call(method, self.mapper, self.ctx, owner=iface)
        imports = [plan.imports]
        lines = []

        if method.params:
            lines.append(f"func (v *{iface}) {go_ident(method.name)}(")
            for p in method.params:
                go, imps = self.go_type(p.type_name, p.indirections + int(p.array))
                imports.append(imps)
                comment = f" // [{', '.join(p.directions)}]" if p.directions else ""
                lines.append(f"\t{go_local(p.name)} {go},{comment}")
            lines.append(") error {")
        else:
            lines.append(f"func (v *{iface}) {go_ident(method.name)}() error {{")

        for stmt in plan.setup:
            lines.append(f"\t{stmt}")

        lines.append(f"\thr, _, _ := syscall.{plan.function}(")
        lines.append(f"\t\tv.VTable().{go_ident(method.name)},")
        lines.append(f"\t\t{plan.nargs},")
        lines.append("\t\tuintptr(unsafe.Pointer(v)),")
        for slot in plan.padded_slots:
            lines.append(f"\t\t{slot},")
        lines.extend([
            "\t)",
            "\tif hr != 0 {",
            "\t\treturn ole.NewError(hr)",
            "\t}",
            "\treturn nil",
            "}",
        ])
        return lines, merge(*imports)


def emit_go(idl: IdlFile, package: str, mapper: Optional[TypeMapper] = None,
            base_interface: str = "IUnknown", source_name: str = "",
            formatter=None) -> str:
    """Generate Go source for idl, passing it through formatter if given."""
    emitter = GoEmitter(package, mapper=mapper, base_interface=base_interface,
                        source_name=source_name)
    src = emitter.emit_file(idl)
    if formatter is not None:
        return formatter(src)
    return src
