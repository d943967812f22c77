"""
Shared fixtures for tests that need a database.

Each test gets a fresh in-memory SQLite database with the full schema.
"""
import unittest
from contextlib import contextmanager
from datetime import date, datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from demand_planning.models import Base, DemandHistory, Material, Lot, MaterialForecast, ForecastAlgorithm, \
    ForecastStatus, ForecastHorizonType
from demand_planning.db.connection import enable_sqlite_savepoints
from demand_planning.db.interface import PlanningScope
from demand_planning.utils.date_utils import calendar_fields

TENANT_ID = 'TENANT-1'
FACILITY_ID = 'PLANT-1'
AS_OF = date(2024, 6, 1)


class DatabaseTestCase(unittest.TestCase):
    """Base class providing an isolated SQLite session."""

    def setUp(self):
        self.engine = enable_sqlite_savepoints(create_engine('sqlite://'))
        Base.metadata.create_all(self.engine)
        self.session = sessionmaker(bind=self.engine)()

    def tearDown(self):
        self.session.close()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    @contextmanager
    def session_scope(self):
        """Stand-in for db.session_scope bound to the test session."""
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def scope(self, material_id='MAT-1'):
        return PlanningScope(TENANT_ID, FACILITY_ID, material_id)

    def add_history(self, material_id, quantities, end_date=AS_OF, forecasts=None, uom='EA'):
        """Insert one demand row per quantity on consecutive days ending the day before end_date."""
        start = end_date - timedelta(days=len(quantities))
        rows = []
        for i, quantity in enumerate(quantities):
            demand_date = start + timedelta(days=i)
            row = DemandHistory(
                tenant_id=TENANT_ID,
                facility_id=FACILITY_ID,
                material_id=material_id,
                demand_date=demand_date,
                actual_demand_quantity=quantity,
                forecasted_demand_quantity=forecasts[i] if forecasts else None,
                demand_uom=uom,
                **calendar_fields(demand_date)
            )
            self.session.add(row)
            rows.append(row)
        self.session.commit()
        return rows

    def add_material(self, material_id='MAT-1', **kwargs):
        material = Material(id=material_id, tenant_id=TENANT_ID, **kwargs)
        self.session.add(material)
        self.session.commit()
        return material

    def add_lot(self, material_id='MAT-1', available=0.0, allocated=0.0, quality_status='RELEASED'):
        lot = Lot(
            tenant_id=TENANT_ID,
            facility_id=FACILITY_ID,
            material_id=material_id,
            quality_status=quality_status,
            current_quantity=available + allocated,
            allocated_quantity=allocated,
            available_quantity=available
        )
        self.session.add(lot)
        self.session.commit()
        return lot

    def add_forecast(self, material_id, forecast_date, quantity, version=1, status=ForecastStatus.ACTIVE,
                     algorithm=ForecastAlgorithm.MOVING_AVERAGE):
        forecast = MaterialForecast(
            tenant_id=TENANT_ID,
            facility_id=FACILITY_ID,
            material_id=material_id,
            forecast_generation_timestamp=datetime(2024, 6, 1, 2, 0),
            forecast_version=version,
            forecast_horizon_type=ForecastHorizonType.SHORT_TERM,
            forecast_algorithm=algorithm,
            forecast_date=forecast_date,
            forecasted_demand_quantity=quantity,
            is_manually_overridden=False,
            forecast_status=status
        )
        self.session.add(forecast)
        self.session.commit()
        return forecast
