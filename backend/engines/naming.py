import re

GPIO_FUNCTION = "GPIO"

# Instance keys that mean "no instance prefix" (chip-level / SYS functions)
BARE_INSTANCE_KEYS = {"", "default"}

PIN_TYPE_ORDER = {
    "power": 1,
    "gnd": 2,
    "reset": 3,
    "boot": 4,
    "gpio": 5,
}

_DIGITS_RE = re.compile(r"(\d+)")


def is_bare_instance(instance_key: str) -> bool:
    return instance_key in BARE_INSTANCE_KEYS


def scheme_suffix(scheme_index: int) -> str:
    return "" if scheme_index == 0 else f"_{scheme_index}"


def function_id(instance_key: str, signal: str, scheme_index: int = 0) -> str:
    """
    Canonical identifier for one signal of one peripheral instance
    under one mapping scheme.

      ("USART1", "TX", 0) -> "USART1_TX"
      ("USART1", "TX", 1) -> "USART1_TX_1"
      ("",       "SWDIO", 0) -> "SWDIO"
    """
    suffix = scheme_suffix(scheme_index)
    if is_bare_instance(instance_key):
        return f"{signal}{suffix}"
    return f"{instance_key}_{signal}{suffix}"


def pin_type(name: str) -> str:
    n = name.upper()
    if n.startswith("VDD") or n == "VBAT":
        return "power"
    if n.startswith("VSS") or n == "GND" or n == "VSSA":
        return "gnd"
    if n == "NRST":
        return "reset"
    if n.startswith("BOOT"):
        return "boot"
    return "gpio"


def default_fixed_function(name: str, ptype: str) -> str:
    if ptype == "gnd":
        return "GND"
    if ptype == "reset":
        return "NRST"
    # VDD, VBAT, BOOT0 ... carry their own name
    return name


def category_to_type(category: str) -> str:
    cat = category.upper()
    if "UART" in cat or "USART" in cat:
        return "uart"
    if "SPI" in cat:
        return "spi"
    if "I2C" in cat:
        return "i2c"
    if "ADC" in cat:
        return "adc"
    if "TIM" in cat or "GPTM" in cat or "ADTM" in cat:
        return "timer"
    if "CAN" in cat:
        return "can"
    if "USB" in cat:
        return "usb"
    if "ETH" in cat:
        return "eth"
    if "OPA" in cat:
        return "opa"
    if "COMP" in cat:
        return "comparator"
    if "SYS" in cat:
        return "sys"
    return category.lower()


def natural_key(name: str) -> tuple:
    """Case-insensitive alphanumeric key: PA1 < PA9 < PA10 < PB0."""
    parts = _DIGITS_RE.split(name.lower())
    # re.split with a capture group alternates text, digits, text, ...
    key = tuple(int(p) if i % 2 else p for i, p in enumerate(parts))
    return key


def pin_sort_key(name: str) -> tuple:
    return (PIN_TYPE_ORDER.get(pin_type(name), 99), natural_key(name), name)
