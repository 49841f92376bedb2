from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Dict, List, Optional, Union


class ChipMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    vendor: str = ""
    family: str = ""
    name: str = ""
    core: str = ""
    package: str = ""
    flash: Optional[Union[str, int]] = None
    sram: Optional[Union[str, int]] = None
    datasheet: str = ""


class PhysicalPin(BaseModel):
    number: int = Field(
        ...,
        description="Physical pin number on the package (1, 2, 3...)"
    )
    name: str = Field(
        ...,
        description="Silkscreen name, e.g. PA1, VSS, NRST"
    )


class PackageInfo(BaseModel):
    type: str = Field(
        default="",
        description="Package type, e.g. QFN20, LQFP48"
    )
    pinCount: int = 0
    pins: List[PhysicalPin] = Field(default_factory=list)


class PinCapability(BaseModel):
    type: str = Field(
        ...,
        description="power | gnd | reset | boot | gpio"
    )
    fixed: bool = Field(
        ...,
        description="True when the pin cannot be reassigned"
    )
    functions: List[str] = Field(
        default_factory=list,
        description="Every function the pin can carry, GPIO first for gpio pins"
    )


class PeripheralInstance(BaseModel):
    name: str = Field(
        ...,
        description="Display name, e.g. USART1"
    )
    key: str = Field(
        default="",
        description="Raw instance key; empty or 'default' for chip-level functions"
    )
    group: str = Field(
        default="",
        description="Datasheet category, e.g. UART/USART, ADTM"
    )
    type: str = Field(
        default="other",
        description="uart | spi | i2c | adc | timer | can | usb | eth | opa | comparator | sys"
    )
    description: str = ""
    signals: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Signal -> every pin it can reach"
    )
    schemes: List[Dict[str, str]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("schemes", "pinmaps"),
        description="Index 0 is the default routing, the rest are remaps"
    )


class ChipDefinition(BaseModel):
    meta: ChipMeta = Field(default_factory=ChipMeta)
    package: PackageInfo = Field(default_factory=PackageInfo)
    pins: Dict[str, PinCapability] = Field(default_factory=dict)
    peripherals: Dict[str, PeripheralInstance] = Field(default_factory=dict)


class AssignRequest(BaseModel):
    function: Optional[str] = Field(
        default=None,
        description="Function identifier; empty or null clears the pin"
    )


class LinkageConflictModel(BaseModel):
    signal: str
    target_pin: str
    occupant: str


class AssignResponse(BaseModel):
    committed: bool
    assignments: Dict[str, str]
    conflicts: List[LinkageConflictModel] = Field(default_factory=list)
    reason: Optional[str] = None


class UsageStatsModel(BaseModel):
    occupied: int
    total: int


class PinStatus(BaseModel):
    name: str
    type: str
    fixed: bool
    functions: List[str]
    assignment: Optional[str] = None


class SessionInfo(BaseModel):
    session_id: str
    chip_id: str
    pins: int
    peripherals: List[str]
    warnings: List[str] = Field(default_factory=list)
    assignments: Dict[str, str] = Field(default_factory=dict)
