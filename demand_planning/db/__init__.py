from demand_planning.db.connection import Database, db, session_scope, dialect_insert, enable_sqlite_savepoints
from demand_planning.db.interface import (
    PlanningScope,
    PlanningDataSource,
    SqlPlanningDataSource,
    InventoryPosition,
    MaterialInfo,
    LeadTimeStatistics,
    ConsumptionTransaction
)

__all__ = [
    'Database',
    'PlanningScope',
    'db',
    'session_scope',
    'dialect_insert',
    'enable_sqlite_savepoints',
    'PlanningDataSource',
    'SqlPlanningDataSource',
    'InventoryPosition',
    'MaterialInfo',
    'LeadTimeStatistics',
    'ConsumptionTransaction'
]
