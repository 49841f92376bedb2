from dataclasses import dataclass
from typing import Dict, List, Optional

from app.models import ChipDefinition, PeripheralInstance
from engines.naming import function_id


@dataclass(frozen=True)
class FunctionContext:
    peripheral: PeripheralInstance
    signal: str
    scheme_index: int
    pin: str  # pin the signal is routed to under this scheme

    @property
    def scheme(self) -> Dict[str, str]:
        return self.peripheral.schemes[self.scheme_index]

    @property
    def logical_signal(self) -> tuple[str, str]:
        """(peripheral, signal) identity, independent of the scheme."""
        return (self.peripheral.name, self.signal)


class FunctionResolver:
    """
    Maps a function identifier back to the peripheral / signal / scheme that
    produces it.

    The reverse index is built once, in the order peripherals -> schemes
    (ascending) -> signals (declared order). When an identifier is produced
    by more than one entry (bare chip-level names shared by two instances),
    the first entry in that order wins.
    """

    def __init__(self, chip: ChipDefinition):
        self._index: Dict[str, List[FunctionContext]] = {}
        for periph in chip.peripherals.values():
            for scheme_index, scheme in enumerate(periph.schemes):
                for sig, pin in scheme.items():
                    fid = function_id(periph.key, sig, scheme_index)
                    self._index.setdefault(fid, []).append(
                        FunctionContext(peripheral=periph, signal=sig, scheme_index=scheme_index, pin=pin)
                    )

    def resolve(self, fid: str, pin: Optional[str] = None) -> Optional[FunctionContext]:
        for ctx in self._index.get(fid, ()):
            if pin is None or ctx.pin == pin:
                return ctx
        return None

    def candidates(self, fid: str) -> List[FunctionContext]:
        """Every entry producing `fid`, in tie-break order."""
        return list(self._index.get(fid, ()))
