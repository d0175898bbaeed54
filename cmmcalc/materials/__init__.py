"""Material master and per-material unit conversions."""

from cmmcalc.materials.conversion import UnitConversionResolver
from cmmcalc.materials.master import MaterialMasterService

__all__ = ["MaterialMasterService", "UnitConversionResolver"]
