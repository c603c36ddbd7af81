class WarehouseError(Exception):
    """Base class for errors raised by the warehouse pipeline."""


class IngestionError(WarehouseError):
    """A source extract could not be loaded into the bronze layer."""

    def __init__(self, source_id: str, message: str, path: str = None, line: int = None):
        self.source_id = source_id
        self.path = path
        self.line = line
        location = path or source_id
        if line is not None:
            location = f"{location}:{line}"
        super().__init__(f"[{source_id}] {location}: {message}")


class ExtentNotFoundError(WarehouseError):
    """A layer extent was read before it was ever written."""
