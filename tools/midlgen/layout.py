"""
Vtable layout: resolves interface inheritance and numbers vtable slots.

Interfaces are registered in declaration order. A parent must be declared
before its children, be one of the root interfaces provided by go-ole, or
is taken to be a Go type supplied by some other file of the package.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from .errors import UnsupportedConstructError
from .imports import Imports, NO_IMPORTS, OLE
from .parser import Interface

# Root interfaces go-ole provides, with the number of vtable slots each one
# already occupies.
ROOT_INTERFACES = {
    "IUnknown": 3,
    "IDispatch": 7,
}


@dataclass(frozen=True)
class Slot:
    interface: str
    method: str
    index: Optional[int]  # absolute vtable index; None below an unknown parent


@dataclass(frozen=True)
class VtableLayout:
    """The flattened vtable of one interface."""
    name: str
    parent: str            # Go type embedded as the parent, e.g. "ole.IUnknown"
    base_slots: Optional[int]  # slots owned by the go-ole root, None if unknown
    slots: Tuple[Slot, ...]    # declared methods along the chain, root first
    imports: Imports = NO_IMPORTS

    @property
    def own_slots(self) -> Tuple[Slot, ...]:
        return tuple(s for s in self.slots if s.interface == self.name)


def marker_targets(interfaces: Iterable[Interface],
                   base_interface: str = "IUnknown") -> Dict[str, str]:
    """Map every interface that never gets methods to the type standing in for it.

    The target is the nearest ancestor that is defined with methods, a go-ole
    root, or a name declared outside the document.
    """
    defined = set()
    parents: Dict[str, str] = {}
    for iface in interfaces:
        if iface.methods:
            defined.add(iface.name)
        elif iface.parent:
            parents[iface.name] = iface.parent
        else:
            parents.setdefault(iface.name, base_interface)

    targets = {}
    for name, target in parents.items():
        if name in defined or name in ROOT_INTERFACES:
            continue
        seen = {name}
        while target in parents and target not in defined \
                and target not in ROOT_INTERFACES and target not in seen:
            seen.add(target)
            target = parents[target]
        targets[name] = target
    return targets


class InterfaceRegistry:
    """Tracks every interface seen so far and computes layouts once."""

    def __init__(self, base_interface: str = "IUnknown"):
        self.base_interface = base_interface
        self._layouts: Dict[str, VtableLayout] = {}
        # Interfaces with no methods: name -> the parent they stand in for.
        self._markers: Dict[str, str] = {}

    def register(self, iface: Interface) -> Optional[VtableLayout]:
        """Record iface and return its layout, or None if it emits no code.

        Method-less interfaces (forward declarations, inheritance anchors,
        references inside a library) and redeclarations of go-ole roots
        produce nothing; a child naming one of them as parent is laid out on
        the nearest ancestor that does exist. Defining the same interface
        with methods twice raises UnsupportedConstructError.
        """
        if iface.name in self._layouts:
            if iface.methods:
                raise UnsupportedConstructError(
                    f"interface {iface.name!r} is defined more than once")
            return None

        parent = iface.parent or self.base_interface
        if iface.name in ROOT_INTERFACES:
            self._markers[iface.name] = iface.name
            return None
        if not iface.methods:
            # A forward declaration names no parent and must not shadow what
            # a later definition says.
            if iface.parent:
                self._markers[iface.name] = iface.parent
            else:
                self._markers.setdefault(iface.name, parent)
            return None

        parent_go, base_slots, inherited, imports = self._resolve_parent(parent)
        start = len(inherited)
        slots = inherited + tuple(
            Slot(interface=iface.name, method=m.name,
                 index=None if base_slots is None else base_slots + start + i)
            for i, m in enumerate(iface.methods)
        )
        layout = VtableLayout(name=iface.name, parent=parent_go,
                              base_slots=base_slots, slots=slots,
                              imports=imports)
        self._layouts[iface.name] = layout
        self._markers.pop(iface.name, None)
        return layout

    def _resolve_parent(self, name: str):
        seen = set()
        while name in self._markers and name not in seen:
            seen.add(name)
            target = self._markers[name]
            if target == name:
                break
            name = target

        if name in self._layouts:
            parent = self._layouts[name]
            return name, parent.base_slots, parent.slots, NO_IMPORTS
        if name in ROOT_INTERFACES:
            return f"ole.{name}", ROOT_INTERFACES[name], (), frozenset({OLE})
        return name, None, (), NO_IMPORTS
