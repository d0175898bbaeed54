"""Database layer for CMM Calc with async SQLAlchemy."""

from cmmcalc.db.connection import get_db, get_session, init_db
from cmmcalc.db.models import (
    Base,
    BuildingProfileModel,
    CalculationRunModel,
    CategoryL1Model,
    CategoryL2Model,
    CategoryL3Model,
    ConversionRuleModel,
    LegacyEstimateModel,
    MaterialBreakdownModel,
    MaterialMasterModel,
    RuleSetModel,
    RuleSetPointerModel,
    UnitConversionModel,
)

__all__ = [
    "Base",
    "CategoryL1Model",
    "CategoryL2Model",
    "CategoryL3Model",
    "MaterialMasterModel",
    "UnitConversionModel",
    "RuleSetModel",
    "RuleSetPointerModel",
    "ConversionRuleModel",
    "CalculationRunModel",
    "MaterialBreakdownModel",
    "BuildingProfileModel",
    "LegacyEstimateModel",
    "get_db",
    "get_session",
    "init_db",
]
