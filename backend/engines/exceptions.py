"""Pin multiplexing exception definitions"""


class PinMuxError(Exception):
    """Base exception for the pin multiplexing engines"""

    pass


class ChipFormatError(PinMuxError, ValueError):
    """Chip description matches neither the normalized nor the nested shape"""

    def __init__(self, message: str, chip_id: str | None = None):
        super().__init__(message)
        self.chip_id = chip_id
