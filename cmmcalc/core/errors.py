"""Error taxonomy for the CMM calculation engine.

Route handlers translate these into HTTP status codes; the engine itself
only raises them.
"""

from __future__ import annotations


class CMMError(Exception):
    """Base class for all CMM errors."""

    pass


class NotFoundError(CMMError):
    """A category, rule set, material, conversion pair, profile or run is missing."""

    def __init__(self, entity: str, identifier: object, message: str | None = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{entity} {identifier} not found")


class ConversionNotFoundError(NotFoundError):
    """No direct or bidirectional-inverse unit conversion row exists."""

    def __init__(self, material_id: object, from_unit: str, to_unit: str):
        self.from_unit = from_unit
        self.to_unit = to_unit
        super().__init__(
            "UnitConversion",
            material_id,
            f"No conversion rule found for {from_unit} to {to_unit} "
            f"(material {material_id})",
        )


class ConflictError(CMMError):
    """Write would violate a uniqueness or immutability rule."""

    pass


class ConfigurationError(CMMError):
    """Configuration file is invalid or missing."""

    pass


class WorkItemLimitError(CMMError):
    """Request carries more work items than the engine accepts."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Too many work items: {count} > {limit}")
