import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from app.models import ChipDefinition, ChipMeta, PackageInfo, PeripheralInstance, PinCapability
from engines.exceptions import ChipFormatError
from engines.naming import (
    GPIO_FUNCTION,
    category_to_type,
    default_fixed_function,
    function_id,
    is_bare_instance,
    pin_sort_key,
    pin_type,
)

logger = logging.getLogger(__name__)

# Keys a peripheral carries directly once it has been normalized
_NORMALIZED_PERIPHERAL_KEYS = ("group", "signals", "schemes", "pinmaps")
_DESCRIPTION_KEYS = ("Description", "description")


def group_pinmaps(signals: Mapping[str, List[str]]) -> List[Dict[str, str]]:
    """
    Rebuild routing schemes from a flat signal -> candidate pins table.

    Scheme i takes candidate i of every signal that has one; a signal with a
    single candidate is shared by every scheme.
    """
    max_len = max((len(pins) for pins in signals.values()), default=0)
    schemes: List[Dict[str, str]] = []
    for i in range(max_len):
        scheme: Dict[str, str] = {}
        for sig, pins in signals.items():
            if len(pins) == 1:
                scheme[sig] = pins[0]
            elif i < len(pins):
                scheme[sig] = pins[i]
        if scheme:
            schemes.append(scheme)
    return schemes


def _signals_from_schemes(schemes: List[Dict[str, str]]) -> Dict[str, List[str]]:
    signals: Dict[str, List[str]] = {}
    for scheme in schemes:
        for sig, pin in scheme.items():
            reachable = signals.setdefault(sig, [])
            if pin not in reachable:
                reachable.append(pin)
    return signals


def _is_normalized(raw: Mapping[str, Any]) -> bool:
    peripherals = raw.get("peripherals") or {}
    if not isinstance(peripherals, Mapping):
        raise ChipFormatError(f"peripherals must be an object, got {type(peripherals).__name__}")
    if peripherals:
        return any(
            isinstance(p, Mapping) and any(k in p for k in _NORMALIZED_PERIPHERAL_KEYS)
            for p in peripherals.values()
        )
    return bool(raw.get("pins"))


def _parse_normalized(raw: Mapping[str, Any]) -> ChipDefinition:
    peripherals: Dict[str, Any] = {}
    for name, periph in (raw.get("peripherals") or {}).items():
        if isinstance(periph, PeripheralInstance):
            periph = periph.model_dump()
        if not isinstance(periph, Mapping):
            raise ChipFormatError(f"Peripheral {name!r} is not an object")
        periph = dict(periph)
        periph.setdefault("name", name)
        periph.setdefault("key", name)
        if "type" not in periph and periph.get("group"):
            periph["type"] = category_to_type(periph["group"])
        peripherals[name] = periph

    try:
        chip = ChipDefinition.model_validate({**raw, "peripherals": peripherals})
    except ValidationError as e:
        raise ChipFormatError(f"Invalid normalized chip description: {e}") from e

    for periph in chip.peripherals.values():
        # Legacy flat peripherals only list candidate pins per signal
        if not periph.schemes and periph.signals:
            periph.schemes = group_pinmaps(periph.signals)
        elif periph.schemes and not periph.signals:
            periph.signals = _signals_from_schemes(periph.schemes)
    return chip


def _instance_schemes(group: str, instance_key: str, data: Any) -> List[Dict[str, str]]:
    if isinstance(data, list):
        schemes = data
    elif isinstance(data, Mapping):
        schemes = data.get("schemes", data.get("pinmaps")) or []
    else:
        raise ChipFormatError(f"Peripheral {group}/{instance_key!r} must be an object or a list of schemes")

    if not isinstance(schemes, list):
        raise ChipFormatError(f"Peripheral {group}/{instance_key!r} schemes must be a list, got {type(schemes).__name__}")

    for scheme in schemes:
        if not isinstance(scheme, Mapping) or not all(isinstance(p, str) for p in scheme.values()):
            raise ChipFormatError(f"Peripheral {group}/{instance_key!r} has a malformed scheme: {scheme!r}")
    return [dict(scheme) for scheme in schemes]


def _parse_nested(raw: Mapping[str, Any], warnings: List[str]) -> ChipDefinition:
    try:
        meta = ChipMeta.model_validate(raw.get("meta") or {})
        package = PackageInfo.model_validate(raw.get("package") or {})
    except ValidationError as e:
        raise ChipFormatError(f"Invalid chip meta/package: {e}") from e

    package_pins = [p.name for p in package.pins]
    known_pins = set(package_pins)
    pin_functions: Dict[str, Dict[str, None]] = {}  # ordered sets
    peripherals: Dict[str, PeripheralInstance] = {}
    reported: set[str] = set()

    for group, group_data in (raw.get("peripherals") or {}).items():
        if not isinstance(group_data, Mapping):
            raise ChipFormatError(f"Peripheral group {group!r} is not an object")
        group_desc = next((group_data[k] for k in _DESCRIPTION_KEYS if k in group_data), "")

        for instance_key, data in group_data.items():
            if instance_key in _DESCRIPTION_KEYS:
                continue

            schemes = _instance_schemes(group, instance_key, data)
            signals: Dict[str, List[str]] = {}

            for scheme_index, scheme in enumerate(schemes):
                for sig, pin in scheme.items():
                    if pin not in known_pins and pin not in reported:
                        reported.add(pin)
                        msg = (
                            f"{group}/{instance_key or group} signal {sig} references pin {pin} "
                            f"which is not in the package pin list"
                        )
                        logger.warning(msg)
                        warnings.append(msg)

                    fid = function_id(instance_key, sig, scheme_index)
                    pin_functions.setdefault(pin, {})[fid] = None

                    reachable = signals.setdefault(sig, [])
                    if pin not in reachable:
                        reachable.append(pin)

            name = group if is_bare_instance(instance_key) else instance_key
            if name in peripherals:
                msg = f"Peripheral {name} is declared more than once; keeping the last declaration"
                logger.warning(msg)
                warnings.append(msg)

            description = group_desc
            if isinstance(data, Mapping):
                description = next((data[k] for k in _DESCRIPTION_KEYS if k in data), group_desc)

            peripherals[name] = PeripheralInstance(
                name=name,
                key=instance_key,
                group=group,
                type=category_to_type(group),
                description=description,
                signals=signals,
                schemes=schemes,
            )

    universe = set(package_pins) | set(pin_functions)
    pins: Dict[str, PinCapability] = {}

    for name in sorted(universe, key=pin_sort_key):
        ptype = pin_type(name)
        functions = list(pin_functions.get(name, {}))

        if ptype == "gpio":
            if GPIO_FUNCTION in functions:
                functions.remove(GPIO_FUNCTION)
            functions.insert(0, GPIO_FUNCTION)
        elif not functions:
            functions.append(default_fixed_function(name, ptype))

        pins[name] = PinCapability(type=ptype, fixed=ptype != "gpio", functions=functions)

    logger.debug(f"Inferred {len(pins)} pins and {len(peripherals)} peripherals for {meta.name or package.type}")

    return ChipDefinition(meta=meta, package=package, pins=pins, peripherals=peripherals)


def infer_chip_data(raw: Any, warnings: Optional[List[str]] = None) -> ChipDefinition:
    """
    Build the normalized pin capability table and peripheral index.

    Accepts either an already-normalized description (returned as is, so the
    function is idempotent on its own output) or the nested
    category -> instance -> schemes form, which is inferred.

    Schema defects (a scheme routing to a pin the package does not list) are
    logged and appended to `warnings`; the pin is still kept.
    """
    if warnings is None:
        warnings = []

    if isinstance(raw, ChipDefinition):
        return raw
    if not isinstance(raw, Mapping):
        raise ChipFormatError(f"Chip description must be an object, got {type(raw).__name__}")

    if _is_normalized(raw):
        return _parse_normalized(raw)
    return _parse_nested(raw, warnings)
