"""Shared fixtures for midlgen tests."""

import pytest
import sys
import os

# Add the project root to sys.path so 'tools.midlgen' is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from tools.midlgen.lexer import tokenize
from tools.midlgen.parser import Parser


SHELL_IDL = """\
import "unknwn.idl", "objidl.idl";

typedef enum tagSIGDN
{
    SIGDN_NORMALDISPLAY = 0,
    SIGDN_PARENTRELATIVEPARSING,
    SIGDN_DESKTOPABSOLUTEPARSING = 0x80028000L,
    SIGDN_PARENTRELATIVEEDITING
} SIGDN;

typedef struct tagPOINTL
{
    LONG x;
    LONG y;
} POINTL, *PPOINTL;

typedef DWORD SFGAOF;
typedef void *HANDLE_T;

const DWORD MAX_ITEMS = 16;
const LPCWSTR DEFAULT_NAME = L"Desktop";

[
    object,
    uuid(43826d1e-e718-42ee-bc55-a1e261c37bfe),
    helpstring("Shell item"),
    pointer_default(unique)
]
interface IShellItem : IUnknown
{
    HRESULT BindToHandler([in, unique] IBindCtx *pbc, [in] REFGUID bhid,
                          [in] REFIID riid, [out, iid_is(riid)] void **ppv);
    HRESULT GetParent([out] IShellItem **ppsi);
    HRESULT GetDisplayName([in] SIGDN sigdnName, [out, string] LPWSTR *ppszName);
    HRESULT GetAttributes([in] SFGAOF sfgaoMask, [out] SFGAOF *psfgaoAttribs);
    HRESULT Compare([in] IShellItem *psi, [in] DWORD hint, [out] int *piOrder);
};
"""


FOO_IDL = """\
interface IFoo
{
    HRESULT Bar([in] bool flag, [out] intPtr *count);
};
"""


CHAIN_IDL = """\
interface IAnchor;

interface IBase : IUnknown
{
    HRESULT One();
};

interface IDerived : IBase
{
    HRESULT Two([in] LONG a);
    HRESULT Three([in] VARIANT value, [in] BOOL enabled);
};

interface IAnchor : IUnknown
{
};

interface IChild : IAnchor
{
    HRESULT Ping([in] LPCWSTR message);
};
"""


LIBRARY_IDL = """\
[uuid(9e5e05ac-1936-4a75-94f7-4704b8b01923), version(1.0)]
library ShellLib
{
    importlib("stdole2.tlb");

    interface IPersist : IUnknown
    {
        HRESULT GetClassID([out] CLSID *pClassID);
    };

    [uuid(9ac9fbe1-e0a2-4ad6-b4ee-e212013ea917)]
    coclass ShellItem
    {
        [default] interface IPersist;
    };
};

module Limits
{
    const int MAX_PATH_LEN = 260;
};
"""


def parse(text):
    return Parser(tokenize(text)).parse()


@pytest.fixture
def shell_idl():
    """Parsed IShellItem IDL with an enum, a struct, typedefs and consts."""
    return parse(SHELL_IDL)


@pytest.fixture
def foo_idl():
    """Parsed single-method IFoo IDL."""
    return parse(FOO_IDL)


@pytest.fixture
def chain_idl():
    """Parsed IDL with a two-level chain and a method-less anchor."""
    return parse(CHAIN_IDL)


@pytest.fixture
def library_idl():
    """Parsed IDL with a library, a coclass and a module."""
    return parse(LIBRARY_IDL)


@pytest.fixture
def foo_file(tmp_path):
    """FOO_IDL written to foo.idl in a temporary directory."""
    path = tmp_path / "foo.idl"
    path.write_text(FOO_IDL)
    return path


@pytest.fixture
def shell_file(tmp_path):
    """SHELL_IDL written to shell.idl in a temporary directory."""
    path = tmp_path / "shell.idl"
    path.write_text(SHELL_IDL)
    return path
