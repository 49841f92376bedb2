import logging

import pytest

from app.models import ChipDefinition
from engines.exceptions import ChipFormatError
from engines.inferencer import group_pinmaps, infer_chip_data


def test_infers_functions_per_pin(lqfp48_raw):
    chip = infer_chip_data(lqfp48_raw)

    assert chip.pins["PA9"].functions == ["GPIO", "USART1_TX", "TIM1_CH2"]
    assert chip.pins["PB6"].functions == ["GPIO", "USART1_TX_1", "I2C1_SCL"]
    assert chip.pins["PA1"].functions == ["GPIO", "ADC_IN1"]
    assert chip.pins["PA13"].functions == ["GPIO", "SWDIO"]
    assert chip.pins["PC13"].functions == ["GPIO"]


def test_fixed_pins_carry_their_own_identity(lqfp48_raw):
    chip = infer_chip_data(lqfp48_raw)

    assert chip.pins["VDD_1"].model_dump() == {"type": "power", "fixed": True, "functions": ["VDD_1"]}
    assert chip.pins["VSS_1"].functions == ["GND"]
    assert chip.pins["VSSA"].functions == ["GND"]
    assert chip.pins["NRST"].functions == ["NRST"]
    assert chip.pins["BOOT0"].model_dump() == {"type": "boot", "fixed": True, "functions": ["BOOT0"]}
    assert chip.pins["PA0"].fixed is False


def test_pin_table_order(lqfp48_raw):
    chip = infer_chip_data(lqfp48_raw)
    names = list(chip.pins)

    assert names[:6] == ["VDD_1", "VDDA", "VSS_1", "VSSA", "NRST", "BOOT0"]
    assert names[6:12] == ["PA0", "PA1", "PA2", "PA3", "PA4", "PA5"]
    assert names.index("PA9") < names.index("PA10") < names.index("PB0")
    assert names[-5:] == ["PC13", "PC14", "PC15", "PD0", "PD1"]


def test_peripheral_index(lqfp48_raw):
    chip = infer_chip_data(lqfp48_raw)

    usart1 = chip.peripherals["USART1"]
    assert usart1.group == "UART/USART"
    assert usart1.type == "uart"
    assert usart1.description == "Universal synchronous asynchronous receiver transmitter"
    assert usart1.signals == {"TX": ["PA9", "PB6"], "RX": ["PA10", "PB7"]}
    assert usart1.schemes == [{"TX": "PA9", "RX": "PA10"}, {"TX": "PB6", "RX": "PB7"}]

    # Bare instance keys take the group name for display
    sys_periph = chip.peripherals["SYS"]
    assert sys_periph.key == ""
    assert sys_periph.type == "sys"
    assert chip.peripherals["ADC"].type == "adc"


def test_unknown_pin_is_reported_and_kept(lqfp48_raw, caplog):
    lqfp48_raw["peripherals"]["ADTM"]["TIM1"]["pinmaps"].append({"CH1": "PE9"})
    warnings = []

    with caplog.at_level(logging.WARNING):
        chip = infer_chip_data(lqfp48_raw, warnings)

    assert len(warnings) == 1
    assert "PE9" in warnings[0]
    assert "PE9" in caplog.text
    assert chip.pins["PE9"].functions == ["GPIO", "TIM1_CH1_1"]


def test_inference_is_idempotent(lqfp48_raw):
    first = infer_chip_data(lqfp48_raw)
    second = infer_chip_data(first.model_dump())

    assert second == first
    assert list(second.pins) == list(first.pins)
    assert infer_chip_data(first) is first


def test_package_without_peripherals(lqfp48_raw):
    lqfp48_raw["peripherals"] = {}
    chip = infer_chip_data(lqfp48_raw)

    assert len(chip.pins) == 48
    assert chip.peripherals == {}
    assert infer_chip_data(chip.model_dump()) == chip


def test_legacy_flat_peripherals_get_grouped_schemes():
    raw = {
        "package": {"type": "QFN20", "pinCount": 3, "pins": [{"number": 1, "name": "PD5"}]},
        "pins": {"PD5": {"type": "gpio", "fixed": False, "functions": ["GPIO", "USART1_TX"]}},
        "peripherals": {
            "USART1": {"type": "uart", "signals": {"TX": ["PD5", "PD0"], "RX": ["PD6", "PD1"], "CK": ["PD4"]}},
        },
    }
    chip = infer_chip_data(raw)

    usart1 = chip.peripherals["USART1"]
    assert usart1.name == "USART1"
    assert usart1.schemes == [
        {"TX": "PD5", "RX": "PD6", "CK": "PD4"},
        {"TX": "PD0", "RX": "PD1", "CK": "PD4"},
    ]
    # Normalized pin tables pass through untouched
    assert chip.pins["PD5"].functions == ["GPIO", "USART1_TX"]


def test_group_pinmaps_omits_signals_without_a_candidate():
    signals = {"TX": ["PA2", "PD5", "PC0"], "RX": ["PA3", "PD6"], "CTS": ["PA0"]}

    assert group_pinmaps(signals) == [
        {"TX": "PA2", "RX": "PA3", "CTS": "PA0"},
        {"TX": "PD5", "RX": "PD6", "CTS": "PA0"},
        {"TX": "PC0", "CTS": "PA0"},
    ]
    assert group_pinmaps({}) == []


@pytest.mark.parametrize(
    "raw",
    [
        ["not", "a", "chip"],
        {"package": {"pins": [{"number": 1, "name": "PA0"}]}, "peripherals": {"SPI": "SPI1"}},
        {"package": {"pins": []}, "peripherals": {"SPI": {"SPI1": {"pinmaps": [{"SCK": 5}]}}}},
        {"package": {"pins": [{"number": "one", "name": "PA0"}]}},
        {"package": {"pins": []}, "peripherals": ["USART1"]},
        {"package": {"pins": []}, "peripherals": {"ADC": {"ADC": {"pinmaps": 5}}}},
    ],
)
def test_malformed_descriptions_raise(raw):
    with pytest.raises(ChipFormatError):
        infer_chip_data(raw)


def test_returns_chip_definition(lqfp48_raw):
    assert isinstance(infer_chip_data(lqfp48_raw), ChipDefinition)


def test_numeric_meta_fields_are_accepted(lqfp48_raw):
    lqfp48_raw["meta"]["flash"] = 64
    lqfp48_raw["meta"]["sram"] = "20K"

    chip = infer_chip_data(lqfp48_raw)

    assert chip.meta.flash == 64
    assert chip.meta.sram == "20K"
    assert infer_chip_data(chip.model_dump()) == chip
