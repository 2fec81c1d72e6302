"""
Type system: MIDL-to-Go type mapping and Go identifier rules.
"""

from typing import Dict, Iterable, Optional, Tuple

from .imports import GoImport, Imports, NO_IMPORTS, OLE, WINTYPES

# MIDL type name → Go type name. Names not listed pass through unchanged
# and are assumed to be declared elsewhere in the generated package.
TYPE_MAP = {
    # Windows typedefs
    "LONG":           "int32",
    "DWORD":          "uint32",
    "ULONG":          "uint32",
    "BYTE":           "byte",
    "LPWSTR":         "string",
    "LPCWSTR":        "string",
    "GUID":           "ole.GUID",
    "IID":            "ole.GUID",
    "CLSID":          "ole.GUID",
    "UINT_PTR":       "*int32",
    "BOOL":           "bool",
    "REFGUID":        "*ole.GUID",
    "REFIID":         "*ole.GUID",
    "REFCLSID":       "*ole.GUID",
    "HWND":           "wintypes.HWND",
    "HBITMAP":        "wintypes.HBITMAP",
    "REFPROPERTYKEY": "wintypes.PROPERTYKEY",
    "PROPVARIANT":    "uintptr",
    "VARIANT":        "ole.VARIANT",
    "IUnknown":       "ole.IUnknown",
    "IDispatch":      "ole.IDispatch",
    "HRESULT":        "int32",
    "INT":            "int32",
    "UINT":           "uint32",
    "SHORT":          "int16",
    "USHORT":         "uint16",
    "WORD":           "uint16",
    "LONGLONG":       "int64",
    "ULONGLONG":      "uint64",
    "DWORD_PTR":      "uintptr",
    "ULONG_PTR":      "uintptr",
    "LONG_PTR":       "uintptr",
    "SIZE_T":         "uintptr",
    "HANDLE":         "uintptr",
    "BOOLEAN":        "byte",
    "WCHAR":          "uint16",
    "FLOAT":          "float32",
    "DOUBLE":         "float64",
    # MIDL base types
    "boolean":            "byte",
    "byte":               "byte",
    "char":               "int8",
    "unsigned char":      "byte",
    "small":              "int8",
    "short":              "int16",
    "unsigned short":     "uint16",
    "int":                "int32",
    "unsigned int":       "uint32",
    "long":               "int32",
    "unsigned long":      "uint32",
    "hyper":              "int64",
    "unsigned hyper":     "uint64",
    "__int64":            "int64",
    "unsigned __int64":   "uint64",
    "wchar_t":            "uint16",
    "float":              "float32",
    "double":             "float64",
}

# Source names whose Go "string" is NUL-terminated UTF-16 on the wire.
WIDE_STRING_TYPES = frozenset({"LPWSTR", "LPCWSTR"})

# Package qualifier in a mapped type → the import it requires.
PACKAGES = {
    "ole": OLE,
    "wintypes": WINTYPES,
}

FLOAT_TYPES = frozenset({"float32", "float64"})

# Go types a `const` declaration can carry.
CONST_TYPES = frozenset({
    "bool", "byte", "string", "uintptr", "float32", "float64",
    "int8", "int16", "int32", "int64", "uint8", "uint16", "uint32", "uint64",
})


class TypeMapper:
    """Resolves MIDL type names to Go types and the imports they imply."""

    def __init__(self, extra_types: Optional[Dict[str, str]] = None,
                 wide_strings: Iterable[str] = (),
                 packages: Optional[Dict[str, GoImport]] = None):
        self.types = dict(TYPE_MAP)
        self.types.update(extra_types or {})
        self.wide_strings = WIDE_STRING_TYPES | frozenset(wide_strings)
        self.packages = dict(PACKAGES)
        self.packages.update(packages or {})

    def map_type(self, name: str) -> Tuple[str, Imports]:
        """Map a MIDL type name to its Go equivalent.

        Returns the Go type and the imports needed to refer to it, e.g.
        "REFGUID" -> ("*ole.GUID", {go-ole}).
        """
        go_type = self.types.get(name, name)
        bare = go_type.lstrip("*")
        if "." in bare:
            qualifier = bare.split(".", 1)[0]
            imp = self.packages.get(qualifier)
            if imp is not None:
                return go_type, frozenset({imp})
        return go_type, NO_IMPORTS

    def is_wide_string(self, name: str) -> bool:
        return name in self.wide_strings


# ── Identifiers ──────────────────────────────────────────────────────

GO_KEYWORDS = frozenset({
    "break", "case", "chan", "const", "continue", "default", "defer", "else",
    "fallthrough", "for", "func", "go", "goto", "if", "import", "interface",
    "map", "package", "range", "return", "select", "struct", "switch", "type",
    "var",
})

# Names a parameter must not shadow inside a generated method body.
RESERVED_LOCALS = frozenset({
    "v", "hr", "bool", "byte", "string", "error", "uintptr", "int", "len",
    "append", "nil", "true", "false", "unsafe", "syscall", "log", "ole",
    "utf16Encoder",
})


def go_ident(name: str) -> str:
    """Make a MIDL identifier safe to use as a Go identifier."""
    if name in GO_KEYWORDS:
        return name + "_"
    return name


def go_local(name: str) -> str:
    """Make a MIDL parameter name safe to use as a Go local inside a stub."""
    if name in GO_KEYWORDS or name in RESERVED_LOCALS:
        return name + "_"
    return name
