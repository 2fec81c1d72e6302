"""Tests for the Go emitter."""

import pytest

from tools.midlgen.emitter import GoEmitter, emit_go, go_literal
from tools.midlgen.errors import EncodingError, UnsupportedConstructError
from tools.midlgen.lexer import tokenize
from tools.midlgen.parser import Constdef, ModuleConstant, Parser
from tools.midlgen.types import TypeMapper


FOO_GO = """\
// Code generated by midlgen. DO NOT EDIT.

package foo

import (
\tole "github.com/go-ole/go-ole"
\t"golang.org/x/text/encoding/unicode"
\t"syscall"
\t"unsafe"
)

var utf16Encoder = unicode.UTF16(unicode.LittleEndian, unicode.IgnoreBOM).NewEncoder()

/////////////////////////////////////////
// IFoo

type IFooVtbl struct {
\tole.IUnknownVtbl
\tBar uintptr // slot 3
}

type IFoo struct {
\tole.IUnknown
}

// VTable reinterprets the object's vtable pointer as a *IFooVtbl.
// Nothing checks that the object really implements that layout.
func (v *IFoo) VTable() *IFooVtbl {
\treturn (*IFooVtbl)(unsafe.Pointer(v.RawVTable))
}

func (v *IFoo) Bar(
\tflag bool, // [in]
\tcount *intPtr, // [out]
) error {
\tvar flagVal uintptr
\tif flag {
\t\tflagVal = 1
\t}
\thr, _, _ := syscall.Syscall(
\t\tv.VTable().Bar,
\t\t3,
\t\tuintptr(unsafe.Pointer(v)),
\t\tflagVal,
\t\tuintptr(unsafe.Pointer(count)),
\t)
\tif hr != 0 {
\t\treturn ole.NewError(hr)
\t}
\treturn nil
}
"""


def parse(text):
    return Parser(tokenize(text)).parse()


def emit(idl, package="shell", **kwargs):
    return GoEmitter(package, **kwargs).emit_file(idl)


def block(src, first_line):
    """Return the lines of src from first_line up to the next blank line."""
    lines = src.splitlines()
    start = lines.index(first_line)
    end = lines.index("", start) if "" in lines[start:] else len(lines)
    return lines[start:end]


class TestFile:
    def test_single_method_interface(self, foo_idl):
        assert emit(foo_idl, package="foo") == FOO_GO

    def test_source_name_in_header(self, foo_idl):
        src = emit(foo_idl, source_name="foo.idl")
        assert src.splitlines()[0] == \
            "// Code generated by midlgen from foo.idl. DO NOT EDIT."

    def test_deterministic(self, shell_idl):
        assert emit(shell_idl) == emit(shell_idl)

    def test_imports_merged_and_sorted(self, shell_idl):
        assert block(emit(shell_idl), "import (") == [
            "import (",
            '\tole "github.com/go-ole/go-ole"',
            '\t"golang.org/x/text/encoding/unicode"',
            '\t"syscall"',
            '\t"unsafe"',
            ")",
        ]

    def test_wide_string_brings_log(self, chain_idl):
        assert '\t"log"' in block(emit(chain_idl), "import (")

    def test_types_only_file(self):
        src = emit(parse("typedef DWORD SFGAOF;"))
        assert block(src, "import (") == [
            "import (",
            '\t"golang.org/x/text/encoding/unicode"',
            ")",
        ]
        assert src.endswith("type SFGAOF uint32\n")

    def test_emit_go_applies_formatter(self, foo_idl):
        seen = []

        def formatter(src):
            seen.append(src)
            return "formatted"

        assert emit_go(foo_idl, "foo", formatter=formatter) == "formatted"
        assert seen == [FOO_GO]

    def test_emit_go_without_formatter(self, foo_idl):
        assert emit_go(foo_idl, "foo") == FOO_GO


class TestEnum:
    def test_iota_then_explicit_then_successor(self, shell_idl):
        src = emit(shell_idl)
        assert "type SIGDN int" in src
        assert block(src, "const (") == [
            "const (",
            "\tSIGDN_NORMALDISPLAY SIGDN = iota",
            "\tSIGDN_PARENTRELATIVEPARSING",
            "\tSIGDN_DESKTOPABSOLUTEPARSING SIGDN = 0x80028000",
            "\tSIGDN_PARENTRELATIVEEDITING SIGDN = SIGDN_DESKTOPABSOLUTEPARSING + 1",
            ")",
        ]
        assert "type tagSIGDN = SIGDN" in src

    def test_explicit_first_value(self):
        src = emit(parse("enum Level { LOW = 2, MID, HIGH };"))
        assert block(src, "const (") == [
            "const (",
            "\tLOW Level = 2",
            "\tMID Level = LOW + 1",
            "\tHIGH Level = MID + 1",
            ")",
        ]

    def test_expression_value(self):
        src = emit(parse("enum Flags { A = 1 << 2, B = A | 1 };"))
        assert "\tA Flags = 1 << 2" in src
        assert "\tB Flags = A | 1" in src


class TestStruct:
    def test_fields_and_aliases(self, shell_idl):
        src = emit(shell_idl)
        assert block(src, "type POINTL struct {") == [
            "type POINTL struct {",
            "\tx int32",
            "\ty int32",
            "}",
        ]
        assert "type tagPOINTL = POINTL" in src
        assert "type PPOINTL *POINTL" in src

    def test_array_and_pointer_fields(self):
        src = emit(parse("struct Buf { BYTE data[16]; LPWSTR *names; BYTE tail[]; };"))
        assert "\tdata [16]byte" in src
        assert "\tnames *string" in src
        assert "\ttail *byte" in src

    def test_keyword_field_renamed(self):
        src = emit(parse("struct S { LONG type; };"))
        assert "\ttype_ int32" in src


class TestTypedef:
    def test_plain(self, shell_idl):
        assert "type SFGAOF uint32" in emit(shell_idl)

    def test_void_pointer(self, shell_idl):
        assert "type HANDLE_T unsafe.Pointer" in emit(shell_idl)

    def test_void(self):
        assert "type NOTHING struct{}" in emit(parse("typedef void NOTHING;"))

    def test_ole_type_brings_import(self):
        src = emit(parse("typedef GUID UUID_T;"))
        assert "type UUID_T ole.GUID" in src
        assert '\tole "github.com/go-ole/go-ole"' in src


class TestConst:
    def test_typed(self, shell_idl):
        src = emit(shell_idl)
        assert "const MAX_ITEMS uint32 = 16" in src
        assert 'const DEFAULT_NAME string = "Desktop"' in src

    def test_untyped_when_not_a_const_type(self):
        src = emit(parse("const IShellItem *NONE = 0;"))
        assert "const NONE = 0" in src

    def test_integer_suffix_stripped(self):
        assert "const BIG uint32 = 0xFFFFFFFF" in emit(parse("const DWORD BIG = 0xFFFFFFFFUL;"))

    def test_wide_string_not_encodable(self):
        node = Constdef(name="BAD", type_name="LPCWSTR", value='L"\ud800"')
        with pytest.raises(EncodingError, match="UTF-16"):
            GoEmitter("shell").emit_const(node)

    def test_narrow_string_not_encodable(self):
        node = ModuleConstant(name="BAD", value='"\udcff"')
        with pytest.raises(EncodingError, match="UTF-8"):
            GoEmitter("shell").emit_module_constant(node)

    def test_go_literal(self):
        assert go_literal("0x10L") == "0x10"
        assert go_literal("5u") == "5"
        assert go_literal("A + 1") == "A + 1"


class TestInterface:
    def test_vtable_struct(self, shell_idl):
        assert block(emit(shell_idl), "type IShellItemVtbl struct {") == [
            "type IShellItemVtbl struct {",
            "\tole.IUnknownVtbl",
            "\tBindToHandler uintptr // slot 3",
            "\tGetParent uintptr // slot 4",
            "\tGetDisplayName uintptr // slot 5",
            "\tGetAttributes uintptr // slot 6",
            "\tCompare uintptr // slot 7",
            "}",
        ]

    def test_void_out_pointer_and_promoted_tier(self, shell_idl):
        src = emit(shell_idl)
        assert block(src, "func (v *IShellItem) BindToHandler(") == [
            "func (v *IShellItem) BindToHandler(",
            "\tpbc *IBindCtx, // [in]",
            "\tbhid *ole.GUID, // [in]",
            "\triid *ole.GUID, // [in]",
            "\tppv *unsafe.Pointer, // [out]",
            ") error {",
            "\thr, _, _ := syscall.Syscall6(",
            "\t\tv.VTable().BindToHandler,",
            "\t\t5,",
            "\t\tuintptr(unsafe.Pointer(v)),",
            "\t\tuintptr(unsafe.Pointer(pbc)),",
            "\t\tuintptr(unsafe.Pointer(bhid)),",
            "\t\tuintptr(unsafe.Pointer(riid)),",
            "\t\tuintptr(unsafe.Pointer(ppv)),",
            "\t\t0,",
            "\t)",
            "\tif hr != 0 {",
            "\t\treturn ole.NewError(hr)",
            "\t}",
            "\treturn nil",
            "}",
        ]

    def test_typedef_param_passed_by_value(self, shell_idl):
        src = emit(shell_idl)
        assert "\tsfgaoMask SFGAOF, // [in]" in src
        assert "\t\tuintptr(sfgaoMask)," in src

    def test_inherited_parent(self, chain_idl):
        src = emit(chain_idl)
        assert block(src, "type IDerivedVtbl struct {") == [
            "type IDerivedVtbl struct {",
            "\tIBaseVtbl",
            "\tTwo uintptr // slot 4",
            "\tThree uintptr // slot 5",
            "}",
        ]
        assert block(src, "type IDerived struct {") == [
            "type IDerived struct {",
            "\tIBase",
            "}",
        ]

    def test_variant_padding(self, chain_idl):
        src = emit(chain_idl)
        lines = block(src, "func (v *IDerived) Three(")
        assert "\thr, _, _ := syscall.Syscall6(" in lines
        assert lines[lines.index("\t\tuintptr(unsafe.Pointer(v)),") + 1:][:5] == [
            "\t\tvalueWords[0],",
            "\t\tvalueWords[1],",
            "\t\tvalueWords[2],",
            "\t\tenabledVal,",
            "\t\t0,",
        ]

    def test_method_without_params(self, chain_idl):
        assert "func (v *IBase) One() error {" in emit(chain_idl)

    def test_marker_interfaces_emit_nothing(self, chain_idl):
        emitter = GoEmitter("chain")
        src = emitter.emit_file(chain_idl)
        assert emitter.interfaces == ["IBase", "IDerived", "IChild"]
        assert "IAnchor" not in src
        assert "\tole.IUnknownVtbl\n\tPing uintptr // slot 3" in src

    def test_wide_string_param(self, chain_idl):
        lines = block(emit(chain_idl), "func (v *IChild) Ping(")
        assert "\tmessageRaw, messageErr := utf16Encoder.Bytes(append([]byte(message), 0))" in lines
        assert "\t\tuintptr(unsafe.Pointer(&messageRaw[0]))," in lines

    def test_unknown_parent_without_slot_numbers(self):
        src = emit(parse("interface IFoo : IExternal { HRESULT Bar(); };"))
        assert "\tIExternalVtbl\n\tBar uintptr\n}" in src

    def test_reserved_param_name(self):
        src = emit(parse("interface IFoo { HRESULT Bar([in] LONG v); };"))
        assert "\tv_ int32, // [in]" in src
        assert "\t\tuintptr(v_)," in src

    def test_base_interface(self, foo_idl):
        src = emit(foo_idl, base_interface="IDispatch")
        assert "\tole.IDispatchVtbl\n\tBar uintptr // slot 7" in src

    def test_float_param_rejected(self):
        idl = parse("interface IFoo { HRESULT Scale([in] float factor); };")
        with pytest.raises(UnsupportedConstructError, match="IFoo.Scale"):
            emit(idl)

    def test_extra_type(self, foo_idl):
        mapper = TypeMapper(extra_types={"intPtr": "int32"})
        src = emit(foo_idl, mapper=mapper)
        assert "\tcount *int32, // [out]" in src


class TestContainers:
    def test_library_and_module(self, library_idl):
        src = emit(library_idl)
        assert "// Library ShellLib\n\n/////////////////////////////////////////\n// IPersist" in src
        assert "\tpClassID *ole.GUID, // [out]" in src
        assert "// Module Limits\n\nconst MAX_PATH_LEN = 260" in src

    def test_coclass_and_importlib_emit_nothing(self, library_idl):
        src = emit(library_idl)
        assert "ShellItem" not in src
        assert "stdole2" not in src

    def test_library_interface_counted(self, library_idl):
        emitter = GoEmitter("shell")
        emitter.emit_file(library_idl)
        assert emitter.interfaces == ["IPersist"]


class TestReferencedTypes:
    def test_root_interface_params_use_go_ole(self):
        src = emit(parse("interface IFoo { HRESULT Get([out] IUnknown **ppunk, "
                         "[in] IDispatch *disp); };"))
        assert "\tppunk **ole.IUnknown, // [out]" in src
        assert "\tdisp *ole.IDispatch, // [in]" in src

    def test_marker_param_uses_nearest_emitted_ancestor(self):
        src = emit(parse("interface IAnchor : IUnknown {};\n"
                         "interface IFoo { HRESULT Take([in] IAnchor *a); };"))
        assert "\ta *ole.IUnknown, // [in]" in src
        assert "IAnchor" not in src

    def test_marker_below_defined_interface(self):
        idl = parse("interface IBase { HRESULT One(); };\n"
                    "interface IMid : IBase {};\n"
                    "typedef IMid *LPMID;\n"
                    "struct Holder { IMid *mid; };\n"
                    "interface IFoo { HRESULT Take([in] IMid *m); };")
        src = emit(idl)
        assert "\tm *IBase, // [in]" in src
        assert "type LPMID *IBase" in src
        assert "\tmid *IBase" in src
        assert "IMid" not in src

    def test_forward_declared_interface_keeps_its_name(self):
        src = emit(parse("interface IItem;\n"
                         "interface IFoo { HRESULT Next([out] IItem **next); };\n"
                         "interface IItem { HRESULT Name(); };"))
        assert "\tnext **IItem, // [out]" in src
        assert "type IItem struct {" in src


class TestDuplicates:
    def test_library_mention_emits_once(self):
        src = emit(parse("interface IFoo { HRESULT Bar(); };\n"
                         "library Lib { interface IFoo; };"))
        assert src.count("type IFooVtbl struct") == 1

    def test_interface_defined_twice(self):
        idl = parse("interface IFoo { HRESULT Bar(); };\n"
                    "interface IFoo { HRESULT Bar(); };")
        with pytest.raises(UnsupportedConstructError, match="more than once"):
            emit(idl)


class TestParamComments:
    def test_attribute_values_rendered(self):
        src = emit(parse("interface IFoo { HRESULT Get([in] LONG key, "
                         "[out(retval)] LONG *value); };"))
        assert "\tkey int32, // [in]" in src
        assert "\tvalue *int32, // [out(retval)]" in src

    def test_other_attributes_omitted(self, shell_idl):
        assert "\tpbc *IBindCtx, // [in]" in emit(shell_idl)

    def test_generated_local_does_not_shadow_parameter(self):
        src = emit(parse("interface IFoo { HRESULT A([in] BOOL flag, "
                         "[in] LONG flagVal); };"))
        assert "\tflagVal int32, // [in]" in src
        assert "\tvar flagVal_ uintptr" in src
        assert "\t\tflagVal_,\n\t\tuintptr(flagVal)," in src
