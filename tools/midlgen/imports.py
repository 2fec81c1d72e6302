"""
Go import tracking.

Every emitter returns the imports its code needs alongside the code itself;
the file-level emitter merges them and renders one import block sorted by
path, so identical input always produces identical output.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List


@dataclass(frozen=True, order=True)
class GoImport:
    path: str
    alias: str = ""

    def spec(self) -> str:
        """Render as it appears inside an import block."""
        if self.alias:
            return f'{self.alias} "{self.path}"'
        return f'"{self.path}"'


Imports = FrozenSet[GoImport]

NO_IMPORTS: Imports = frozenset()

UNSAFE = GoImport("unsafe")
SYSCALL = GoImport("syscall")
LOG = GoImport("log")
TEXT_UNICODE = GoImport("golang.org/x/text/encoding/unicode")
OLE = GoImport("github.com/go-ole/go-ole", "ole")
WINTYPES = GoImport("github.com/jd3nn1s/gomidl/wintypes")


def merge(*groups: Iterable[GoImport]) -> Imports:
    merged = set()
    for group in groups:
        merged.update(group)
    return frozenset(merged)


def import_block(imports: Iterable[GoImport]) -> List[str]:
    """Render an import block, one spec per line, sorted by path."""
    lines = ["import ("]
    for imp in sorted(set(imports)):
        lines.append(f"\t{imp.spec()}")
    lines.append(")")
    return lines
