import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from app.models import ChipDefinition
from engines.inferencer import infer_chip_data
from engines.naming import function_id
from engines.resolver import FunctionContext, FunctionResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkageConflict:
    signal: str
    target_pin: str
    occupant: str


@dataclass
class AssignmentResult:
    committed: bool
    table: Dict[str, str]
    conflicts: List[LinkageConflict] = field(default_factory=list)
    reason: Optional[str] = None


@dataclass(frozen=True)
class UsageStats:
    occupied: int
    total: int


class AssignmentStore(Protocol):
    def load(self, chip_id: str) -> Optional[Dict[str, str]]: ...

    def save(self, chip_id: str, table: Dict[str, str]) -> None: ...


class InMemoryAssignmentStore:
    def __init__(self):
        self._tables: Dict[str, Dict[str, str]] = {}

    def load(self, chip_id: str) -> Optional[Dict[str, str]]:
        table = self._tables.get(chip_id)
        return dict(table) if table is not None else None

    def save(self, chip_id: str, table: Dict[str, str]) -> None:
        self._tables[chip_id] = dict(table)


def chip_identity(chip: ChipDefinition) -> str:
    """Persistence key, e.g. WCH_CH32V203C8T6_LQFP48."""
    meta = chip.meta
    parts = [meta.vendor, meta.name, meta.package or chip.package.type]
    return "_".join(p for p in parts if p) or "unknown"


class AllocationSession:
    """
    One loaded chip plus its current pin -> function assignment table.

    The table is never mutated in place: every call works on a copy and
    either commits it or throws it away, so readers always see a consistent
    snapshot. Not thread-safe; callers serialize assign/clear.
    """

    def __init__(
        self,
        chip: ChipDefinition | Dict[str, Any],
        store: Optional[AssignmentStore] = None,
        warnings: Optional[List[str]] = None,
    ):
        self.warnings: List[str] = warnings if warnings is not None else []
        self.chip = infer_chip_data(chip, self.warnings)
        self.chip_id = chip_identity(self.chip)
        self.resolver = FunctionResolver(self.chip)
        self._store = store
        self._table: Dict[str, str] = {}

        if store is not None:
            saved = store.load(self.chip_id)
            if saved:
                self._table = self._validate_saved(saved)

    # ------------------------------------------------------------------
    # Queries

    @property
    def assignments(self) -> Dict[str, str]:
        return dict(self._table)

    def functions_of(self, pin: str) -> List[str]:
        cap = self.chip.pins.get(pin)
        return list(cap.functions) if cap else []

    def type_of(self, pin: str) -> str:
        cap = self.chip.pins.get(pin)
        return cap.type if cap else "unknown"

    def current_assignment(self, pin: str) -> Optional[str]:
        return self._table.get(pin)

    def usage_stats(self) -> UsageStats:
        names = [p.name for p in self.chip.package.pins] or list(self.chip.pins)
        occupied = 0
        for name in names:
            cap = self.chip.pins.get(name)
            if cap is None:
                continue
            if cap.fixed or self._table.get(name):
                occupied += 1
        return UsageStats(occupied=occupied, total=len(names))

    # ------------------------------------------------------------------
    # Mutation

    def clear(self, pin: str) -> AssignmentResult:
        return self.assign(pin, None)

    def assign(self, pin: str, fid: Optional[str]) -> AssignmentResult:
        cap = self.chip.pins.get(pin)
        if cap is None:
            return self._reject(f"Unknown pin {pin}")
        if cap.fixed:
            return self._reject(f"Pin {pin} is a fixed {cap.type} pin")

        if not fid:
            working = dict(self._table)
            working.pop(pin, None)
            return self._commit(working)

        if fid not in cap.functions:
            return self._reject(f"Pin {pin} does not support {fid}")

        ctx = self.resolver.resolve(fid, pin)
        if ctx is None:
            working = dict(self._table)
            working[pin] = fid
            return self._commit(working)

        working = dict(self._table)

        # A logical signal lives on one pin: the newest request wins
        for other_pin, other_fid in list(working.items()):
            if other_pin == pin:
                continue
            if self._logical_signal(other_fid) == ctx.logical_signal:
                logger.debug(f"{fid} on {pin} displaces {other_fid} on {other_pin}")
                del working[other_pin]

        migrations, conflicts = self._plan_linkage(ctx, working)
        if conflicts:
            logger.info(
                f"Assigning {fid} to {pin} aborted: "
                + ", ".join(f"{c.signal} -> {c.target_pin} (occupied by {c.occupant})" for c in conflicts)
            )
            return AssignmentResult(committed=False, table=dict(self._table), conflicts=conflicts)

        for sig, _, _ in migrations:
            for p, f in list(working.items()):
                if self._logical_signal(f) == (ctx.peripheral.name, sig):
                    del working[p]
        for _, target_pin, target_fid in migrations:
            logger.debug(f"Linked switch: {target_pin} -> {target_fid}")
            working[target_pin] = target_fid

        working[pin] = fid
        return self._commit(working)

    # ------------------------------------------------------------------
    # Internals

    def _logical_signal(self, fid: str) -> Optional[Tuple[str, str]]:
        ctx = self.resolver.resolve(fid)
        return ctx.logical_signal if ctx else None

    def _plan_linkage(
        self, ctx: FunctionContext, working: Dict[str, str]
    ) -> Tuple[List[Tuple[str, str, str]], List[LinkageConflict]]:
        """Siblings of the assigned signal that must follow it to the new scheme."""
        active = {self._logical_signal(f) for f in working.values()}
        migrations: List[Tuple[str, str, str]] = []
        conflicts: List[LinkageConflict] = []

        for sig, target_pin in ctx.scheme.items():
            if sig == ctx.signal:
                continue
            if (ctx.peripheral.name, sig) not in active:
                continue

            target_fid = function_id(ctx.peripheral.key, sig, ctx.scheme_index)
            if target_fid not in self.functions_of(target_pin):
                logger.debug(f"{target_pin} does not offer {target_fid}; {sig} left in place")
                continue

            occupant = working.get(target_pin)
            if occupant is None or occupant == target_fid:
                migrations.append((sig, target_pin, target_fid))
            else:
                conflicts.append(LinkageConflict(signal=sig, target_pin=target_pin, occupant=occupant))

        return migrations, conflicts

    def _validate_saved(self, saved: Dict[str, str]) -> Dict[str, str]:
        table: Dict[str, str] = {}
        taken: set[Tuple[str, str]] = set()
        for pin, fid in saved.items():
            cap = self.chip.pins.get(pin)
            if cap is None or cap.fixed or not fid or fid not in cap.functions:
                logger.warning(f"Dropping saved assignment {pin} -> {fid} for {self.chip_id}: no longer valid")
                continue
            ctx = self.resolver.resolve(fid, pin)
            if ctx is not None:
                if ctx.logical_signal in taken:
                    logger.warning(f"Dropping saved assignment {pin} -> {fid}: signal already routed elsewhere")
                    continue
                taken.add(ctx.logical_signal)
            table[pin] = fid
        return table

    def _reject(self, reason: str) -> AssignmentResult:
        logger.debug(reason)
        return AssignmentResult(committed=False, table=dict(self._table), reason=reason)

    def _commit(self, working: Dict[str, str]) -> AssignmentResult:
        self._table = working
        if self._store is not None:
            self._store.save(self.chip_id, working)
        return AssignmentResult(committed=True, table=dict(working))
