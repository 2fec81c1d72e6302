"""
Parameter marshaling and syscall tier selection.

Every method parameter is turned into one or more word-sized syscall
arguments ("slots") plus the Go statements that prepare them. The receiver
takes one leading slot; the call goes through the smallest of
syscall.Syscall/Syscall6/Syscall9 that fits, with unused trailing slots
passed as zero.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from .errors import UnsupportedConstructError
from .imports import Imports, LOG, NO_IMPORTS, SYSCALL, UNSAFE, merge
from .parser import Method, Param
from .types import FLOAT_TYPES, TypeMapper, go_local

# Syscall arity → the syscall function with that many argument words.
CALL_TIERS = {
    3: "Syscall",
    6: "Syscall6",
    9: "Syscall9",
}

# Required argument count (receiver included) → smallest tier that fits.
TIER_FOR_COUNT = {
    count: min(t for t in CALL_TIERS if t >= count)
    for count in range(1, max(CALL_TIERS) + 1)
}

# Words spanned by a VARIANT passed by value.
VARIANT_SLOTS = 3


@dataclass(frozen=True)
class TypeContext:
    """Declarations of the document that change how a parameter is passed."""
    typedefs: Dict[str, Tuple[str, int]]   # alias -> (target type, pointer depth)
    structs: FrozenSet[str]                # struct names (and plain aliases)
    # method-less interfaces -> the emitted type that stands in for them
    markers: Dict[str, str] = field(default_factory=dict)


EMPTY_CONTEXT = TypeContext(typedefs={}, structs=frozenset())


@dataclass(frozen=True)
class Representation:
    """A parameter type after typedef and type-map resolution."""
    source: str        # MIDL name at the end of the typedef chain
    go_type: str       # Go type the source name maps to
    indirections: int  # effective pointer depth
    is_struct: bool
    imports: Imports


@dataclass(frozen=True)
class Marshaled:
    """How one parameter crosses the syscall boundary."""
    slots: Tuple[str, ...]
    setup: Tuple[str, ...] = ()  # Go statements run before the call
    imports: Imports = NO_IMPORTS


@dataclass(frozen=True)
class CallPlan:
    """Everything needed to emit the syscall for one method."""
    method: str
    setup: Tuple[str, ...]
    slots: Tuple[str, ...]   # flattened parameter slots, unpadded
    tier: int
    imports: Imports

    @property
    def function(self) -> str:
        return CALL_TIERS[self.tier]

    @property
    def nargs(self) -> int:
        """Argument words actually used, receiver included."""
        return 1 + len(self.slots)

    @property
    def padded_slots(self) -> Tuple[str, ...]:
        return self.slots + ("0",) * (self.tier - self.nargs)


def select_tier(count: int) -> int:
    """Smallest supported syscall arity that can carry count argument words."""
    tier = TIER_FOR_COUNT.get(count)
    if tier is None:
        raise UnsupportedConstructError(
            f"{count} argument words exceed the largest syscall tier "
            f"({max(CALL_TIERS)})")
    return tier


def resolve(type_name: str, indirections: int, mapper: TypeMapper,
            ctx: TypeContext = EMPTY_CONTEXT) -> Representation:
    """Follow typedefs to the underlying type and add up pointer depth."""
    seen = set()
    name = type_name
    depth = indirections
    while name not in seen and (name in ctx.typedefs or name in ctx.markers):
        seen.add(name)
        if name in ctx.markers:
            name = ctx.markers[name]
        else:
            name, extra = ctx.typedefs[name]
            depth += extra
    go, imports = mapper.map_type(name)
    return Representation(source=name, go_type=go,
                          indirections=depth + go.count("*"),
                          is_struct=name in ctx.structs,
                          imports=imports)


def _fresh(local: str, taken: Set[str]) -> str:
    while local in taken:
        local += "_"
    taken.add(local)
    return local


def marshal_param(param: Param, mapper: TypeMapper,
                  ctx: TypeContext = EMPTY_CONTEXT,
                  owner: str = "",
                  taken: Optional[Set[str]] = None) -> Marshaled:
    """Decide the slots and setup code for one parameter.

    Generated locals never reuse a name in taken, which should hold every
    parameter of the method; the names chosen are added to it.

    Raises UnsupportedConstructError when the parameter has no word-sized
    representation.
    """
    rep = resolve(param.type_name, param.indirections + int(param.array),
                  mapper, ctx)
    name = go_local(param.name)
    if taken is None:
        taken = {name}
    where = f"{owner}: parameter {param.name!r}" if owner else f"parameter {param.name!r}"

    if rep.go_type == "ole.VARIANT" and rep.indirections == 0:
        words = _fresh(f"{name}Words", taken)
        return Marshaled(
            slots=tuple(f"{words}[{i}]" for i in range(VARIANT_SLOTS)),
            setup=(f"{words} := (*[{VARIANT_SLOTS}]uintptr)(unsafe.Pointer(&{name}))",),
            imports=frozenset({UNSAFE}),
        )

    if rep.go_type == "bool" and rep.indirections == 0:
        val = _fresh(f"{name}Val", taken)
        return Marshaled(
            slots=(val,),
            setup=(
                f"var {val} uintptr",
                f"if {name} {{",
                f"\t{val} = 1",
                "}",
            ),
        )

    if rep.indirections > 0:
        return Marshaled(slots=(f"uintptr(unsafe.Pointer({name}))",),
                         imports=frozenset({UNSAFE}))

    if rep.go_type == "string":
        if not mapper.is_wide_string(rep.source):
            raise UnsupportedConstructError(
                f"{where}: cannot pass {rep.source!r} as a Go string")
        raw, err = _fresh(f"{name}Raw", taken), _fresh(f"{name}Err", taken)
        return Marshaled(
            slots=(f"uintptr(unsafe.Pointer(&{raw}[0]))",),
            setup=(
                f"{raw}, {err} := utf16Encoder.Bytes(append([]byte({name}), 0))",
                f"if {err} != nil {{",
                f'\tlog.Fatalln("unable to utf-16 encode {param.name}:", {err})',
                "}",
            ),
            imports=frozenset({LOG, UNSAFE}),
        )

    if rep.go_type in FLOAT_TYPES:
        raise UnsupportedConstructError(
            f"{where}: floating-point values cannot be passed in syscall words")

    if rep.is_struct:
        raise UnsupportedConstructError(
            f"{where}: struct {rep.source!r} passed by value has no "
            f"word-sized representation")

    return Marshaled(slots=(f"uintptr({name})",))


def plan_call(method: Method, mapper: TypeMapper,
              ctx: TypeContext = EMPTY_CONTEXT,
              owner: Optional[str] = None) -> CallPlan:
    """Marshal every parameter of method and pick the syscall tier."""
    label = f"{owner}.{method.name}" if owner else method.name
    setup: List[str] = []
    slots: List[str] = []
    imports = [frozenset({SYSCALL, UNSAFE})]
    taken = {go_local(p.name) for p in method.params}
    for param in method.params:
        m = marshal_param(param, mapper, ctx, owner=label, taken=taken)
        setup.extend(m.setup)
        slots.extend(m.slots)
        imports.append(m.imports)

    try:
        tier = select_tier(1 + len(slots))
    except UnsupportedConstructError as e:
        raise UnsupportedConstructError(f"{label}: {e}") from e

    return CallPlan(method=method.name, setup=tuple(setup), slots=tuple(slots),
                    tier=tier, imports=merge(*imports))
