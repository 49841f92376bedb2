import pytest


FIXED_PINS = ["VDD_1", "VDDA", "VSS_1", "VSSA", "NRST", "BOOT0"]
GPIO_PINS = (
    [f"PA{i}" for i in range(16)]
    + [f"PB{i}" for i in range(16)]
    + [f"PC{i}" for i in range(5)]
    + ["PC13", "PC14", "PC15", "PD0", "PD1"]
)


def _package(names):
    return {
        "type": "LQFP48" if len(names) == 48 else f"TEST{len(names)}",
        "pinCount": len(names),
        "pins": [{"number": i + 1, "name": n} for i, n in enumerate(names)],
    }


@pytest.fixture
def lqfp48_raw():
    """48-pin package: 6 fixed pins, 42 GPIOs, nested peripheral description."""
    return {
        "meta": {
            "vendor": "WCH",
            "family": "CH32V203",
            "name": "CH32V203C8T6",
            "core": "RISC-V",
            "package": "LQFP48",
            "datasheet": "CH32V203DS0.PDF",
        },
        "package": _package(FIXED_PINS + GPIO_PINS),
        "peripherals": {
            "UART/USART": {
                "Description": "Universal synchronous asynchronous receiver transmitter",
                "USART1": {"pinmaps": [{"TX": "PA9", "RX": "PA10"}, {"TX": "PB6", "RX": "PB7"}]},
                "USART2": {"pinmaps": [{"TX": "PA2", "RX": "PA3"}]},
            },
            "SPI": {
                "Description": "Serial peripheral interface",
                "SPI1": {
                    "pinmaps": [
                        {"NSS": "PA4", "SCK": "PA5", "MISO": "PA6", "MOSI": "PA7"},
                        {"NSS": "PA15", "SCK": "PB3", "MISO": "PB4", "MOSI": "PB5"},
                    ]
                },
            },
            "I2C": {
                "I2C1": {"pinmaps": [{"SCL": "PB6", "SDA": "PB7"}, {"SCL": "PB8", "SDA": "PB9"}]},
            },
            "ADC": {
                "Description": "12-bit analog to digital converter",
                "ADC": [{"IN0": "PA0", "IN1": "PA1", "IN2": "PA2", "IN3": "PA3"}],
            },
            "ADTM": {
                "Description": "Advanced-control timer",
                "TIM1": {"pinmaps": [{"CH1": "PA8", "CH2": "PA9", "CH3": "PA10"}]},
            },
            "SYS": {
                "": [{"SWDIO": "PA13", "SWCLK": "PA14", "OSC_IN": "PD0", "OSC_OUT": "PD1"}],
            },
        },
    }


@pytest.fixture
def usart_raw():
    """USART1 with a default and a remapped routing, plus an SPI sharing PB7."""
    return {
        "meta": {"vendor": "ST", "name": "DEMO", "package": "TEST7"},
        "package": _package(["VDD", "VSS", "PA9", "PA10", "PB6", "PB7", "PB8"]),
        "peripherals": {
            "UART/USART": {
                "USART1": {"pinmaps": [{"TX": "PA9", "RX": "PA10"}, {"TX": "PB6", "RX": "PB7"}]},
            },
            "SPI": {
                "SPI1": {"pinmaps": [{"SCK": "PB8", "MISO": "PB7"}]},
            },
        },
    }
