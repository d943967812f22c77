# demand_planning/models.py
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Boolean, ForeignKey, Text,
    Enum, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
import enum

Base = declarative_base()

class ForecastHorizonType(enum.Enum):
    """Classification of a forecast run by the length of its horizon.

    Values:
        SHORT_TERM: horizon of up to 30 days
        MEDIUM_TERM: horizon of 31 to 90 days
        LONG_TERM: horizon beyond 90 days
    """
    SHORT_TERM = 'SHORT_TERM'
    MEDIUM_TERM = 'MEDIUM_TERM'
    LONG_TERM = 'LONG_TERM'

    def __str__(self):
        return self.value

class ForecastAlgorithm(enum.Enum):
    MOVING_AVERAGE = 'MOVING_AVERAGE'
    EXP_SMOOTHING = 'EXP_SMOOTHING'
    HOLT_WINTERS = 'HOLT_WINTERS'

    def __str__(self):
        return self.value

    @classmethod
    def from_string(cls, value: str) -> 'ForecastAlgorithm':
        """Create a ForecastAlgorithm from a string value.

        Raises:
            ValueError if the string value is not valid
        """
        try:
            return cls(value.upper())
        except ValueError:
            valid = ', '.join(a.value for a in cls)
            raise ValueError(f"Invalid forecast algorithm: {value}. Valid values are: AUTO, {valid}")

class ForecastStatus(enum.Enum):
    ACTIVE = 'ACTIVE'
    SUPERSEDED = 'SUPERSEDED'
    REJECTED = 'REJECTED'

class AggregationLevel(enum.Enum):
    DAILY = 'DAILY'
    WEEKLY = 'WEEKLY'
    MONTHLY = 'MONTHLY'
    QUARTERLY = 'QUARTERLY'

class CalculationMethod(enum.Enum):
    BASIC = 'BASIC'                                  # Fixed days of supply
    DEMAND_VARIABILITY = 'DEMAND_VARIABILITY'        # Z x sigma_d x sqrt(LT)
    LEAD_TIME_VARIABILITY = 'LEAD_TIME_VARIABILITY'  # Z x d x sigma_LT
    COMBINED_VARIABILITY = 'COMBINED_VARIABILITY'    # King's formula
    FORECAST_BASED = 'FORECAST_BASED'

class SuggestionStatus(enum.Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    CONVERTED_TO_PO = 'CONVERTED_TO_PO'
    EXPIRED = 'EXPIRED'

class UrgencyLevel(enum.Enum):
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'

class TransactionType(enum.Enum):
    RECEIPT = 'RECEIPT'
    ISSUE = 'ISSUE'
    SCRAP = 'SCRAP'
    TRANSFER = 'TRANSFER'
    ADJUSTMENT = 'ADJUSTMENT'

# Transaction types counted as consumption by the demand backfill
CONSUMPTION_TRANSACTION_TYPES = (TransactionType.ISSUE, TransactionType.SCRAP, TransactionType.TRANSFER)

# Purchase order statuses that still count towards on-order quantity
OPEN_PURCHASE_ORDER_STATUSES = ('DRAFT', 'SUBMITTED', 'APPROVED', 'IN_TRANSIT')


class DemandHistory(Base):
    __tablename__ = 'demand_history'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'facility_id', 'material_id', 'demand_date',
                         name='uq_demand_history_material_date'),
        Index('ix_demand_history_lookup', 'tenant_id', 'facility_id', 'material_id', 'demand_date'),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    material_id = Column(String(50), nullable=False)
    demand_date = Column(Date, nullable=False)

    # Calendar breakdown
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    week_of_year = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday
    quarter = Column(Integer, nullable=False)

    # Exogenous flags
    is_holiday = Column(Boolean, default=False)
    is_promotional_period = Column(Boolean, default=False)
    marketing_campaign_active = Column(Boolean, default=False)

    actual_demand_quantity = Column(Float, nullable=False, default=0.0)
    forecasted_demand_quantity = Column(Float)
    demand_uom = Column(String(20), nullable=False, default='UNITS')

    # Demand disaggregation
    sales_order_demand = Column(Float, default=0.0)
    production_order_demand = Column(Float, default=0.0)
    transfer_order_demand = Column(Float, default=0.0)
    scrap_adjustment = Column(Float, default=0.0)

    avg_unit_price = Column(Float)
    promotional_discount_pct = Column(Float)

    # actual - forecast; None until a forecast is attached
    forecast_error = Column(Float)
    absolute_percentage_error = Column(Float)

    created_at = Column(DateTime, default=func.now())
    created_by = Column(String(50))
    updated_at = Column(DateTime, onupdate=func.now())
    updated_by = Column(String(50))
    deleted_at = Column(DateTime)

    def __repr__(self):
        return (f"<DemandHistory(material_id='{self.material_id}', date={self.demand_date}, "
                f"actual={self.actual_demand_quantity})>")


class MaterialForecast(Base):
    __tablename__ = 'material_forecasts'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'facility_id', 'material_id', 'forecast_date', 'forecast_version',
                         name='uq_material_forecast_version'),
        Index('ix_material_forecasts_lookup', 'tenant_id', 'facility_id', 'material_id', 'forecast_date'),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    material_id = Column(String(50), nullable=False)

    forecast_generation_timestamp = Column(DateTime, nullable=False)
    forecast_version = Column(Integer, nullable=False)
    forecast_horizon_type = Column(Enum(ForecastHorizonType), nullable=False)
    forecast_algorithm = Column(Enum(ForecastAlgorithm), nullable=False)

    forecast_date = Column(Date, nullable=False)
    forecast_year = Column(Integer)
    forecast_month = Column(Integer)
    forecast_week_of_year = Column(Integer)

    forecasted_demand_quantity = Column(Float, nullable=False)
    forecast_uom = Column(String(20), default='UNITS')

    lower_bound_80_pct = Column(Float)
    upper_bound_80_pct = Column(Float)
    lower_bound_95_pct = Column(Float)
    upper_bound_95_pct = Column(Float)
    model_confidence_score = Column(Float)

    # Manual override
    is_manually_overridden = Column(Boolean, default=False)
    manual_override_quantity = Column(Float)
    manual_override_by = Column(String(50))
    manual_override_reason = Column(Text)

    forecast_status = Column(Enum(ForecastStatus), nullable=False, default=ForecastStatus.ACTIVE)

    created_at = Column(DateTime, default=func.now())
    created_by = Column(String(50))
    updated_at = Column(DateTime, onupdate=func.now())
    deleted_at = Column(DateTime)

    @property
    def effective_quantity(self) -> float:
        """Forecast quantity with any manual override applied."""
        if self.is_manually_overridden and self.manual_override_quantity is not None:
            return self.manual_override_quantity
        return self.forecasted_demand_quantity

    def __repr__(self):
        return (f"<MaterialForecast(material_id='{self.material_id}', date={self.forecast_date}, "
                f"v{self.forecast_version}, status={self.forecast_status})>")


class ForecastAccuracyMetric(Base):
    __tablename__ = 'forecast_accuracy_metrics'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'facility_id', 'material_id', 'measurement_period_start',
                         'measurement_period_end', 'aggregation_level',
                         name='uq_accuracy_metric_period'),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    material_id = Column(String(50), nullable=False)
    forecast_algorithm = Column(Enum(ForecastAlgorithm))

    measurement_period_start = Column(Date, nullable=False)
    measurement_period_end = Column(Date, nullable=False)
    aggregation_level = Column(Enum(AggregationLevel), nullable=False, default=AggregationLevel.DAILY)

    mape = Column(Float)
    rmse = Column(Float)
    mae = Column(Float)
    mad = Column(Float)
    bias = Column(Float)
    bias_percentage = Column(Float)
    tracking_signal = Column(Float)

    sample_size = Column(Integer, nullable=False, default=0)
    total_actual_demand = Column(Float, default=0.0)
    total_forecasted_demand = Column(Float, default=0.0)
    is_within_tolerance = Column(Boolean, default=False)
    target_mape_threshold = Column(Float)

    created_at = Column(DateTime, default=func.now())
    created_by = Column(String(50))
    updated_at = Column(DateTime, onupdate=func.now())


class ReplenishmentSuggestion(Base):
    __tablename__ = 'replenishment_suggestions'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    material_id = Column(String(50), nullable=False)
    preferred_vendor_id = Column(String(50))

    suggestion_generation_timestamp = Column(DateTime, nullable=False)
    suggestion_status = Column(Enum(SuggestionStatus), nullable=False, default=SuggestionStatus.PENDING)

    # Inventory position snapshot
    current_on_hand_quantity = Column(Float, default=0.0)
    current_allocated_quantity = Column(Float, default=0.0)
    current_available_quantity = Column(Float, default=0.0)
    current_on_order_quantity = Column(Float, default=0.0)

    safety_stock_quantity = Column(Float, default=0.0)
    reorder_point_quantity = Column(Float, default=0.0)
    economic_order_quantity = Column(Float, default=0.0)

    forecasted_demand_30_days = Column(Float, default=0.0)
    forecasted_demand_60_days = Column(Float)
    forecasted_demand_90_days = Column(Float)
    projected_stockout_date = Column(Date)
    days_until_stockout = Column(Integer)

    recommended_order_quantity = Column(Float, nullable=False)
    recommended_order_uom = Column(String(20))
    recommended_order_date = Column(Date, nullable=False)
    recommended_delivery_date = Column(Date)

    estimated_unit_cost = Column(Float)
    estimated_total_cost = Column(Float)
    vendor_lead_time_days = Column(Integer)

    suggestion_reason = Column(Text)
    calculation_method = Column(Enum(CalculationMethod), default=CalculationMethod.FORECAST_BASED)
    urgency_level = Column(Enum(UrgencyLevel))

    created_at = Column(DateTime, default=func.now())
    created_by = Column(String(50))
    deleted_at = Column(DateTime)


# Collaborator reference tables. The engine only reads these, except for the
# planning parameter write-back on Material.

class Material(Base):
    __tablename__ = 'materials'

    id = Column(String(50), primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    material_code = Column(String(50))
    description = Column(String(255))
    primary_uom = Column(String(20), default='UNITS')

    minimum_order_quantity = Column(Float, default=1.0)
    order_multiple = Column(Float, default=1.0)
    lead_time_days = Column(Integer)
    last_cost = Column(Float)
    standard_cost = Column(Float)

    forecasting_enabled = Column(Boolean, default=True)
    target_forecast_accuracy_pct = Column(Float)

    # Planning parameters written back by the safety stock calculator
    safety_stock_quantity = Column(Float)
    reorder_point = Column(Float)
    economic_order_quantity = Column(Float)

    updated_at = Column(DateTime, onupdate=func.now())
    updated_by = Column(String(50))
    deleted_at = Column(DateTime)

    suppliers = relationship("MaterialSupplier", back_populates="material")


class MaterialSupplier(Base):
    __tablename__ = 'materials_suppliers'

    id = Column(Integer, primary_key=True)
    material_id = Column(String(50), ForeignKey('materials.id'), nullable=False)
    vendor_id = Column(String(50), nullable=False)
    is_preferred = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())
    deleted_at = Column(DateTime)

    material = relationship("Material", back_populates="suppliers")


class Lot(Base):
    __tablename__ = 'lots'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    material_id = Column(String(50), nullable=False)
    lot_number = Column(String(50))
    quality_status = Column(String(20), default='RELEASED')
    current_quantity = Column(Float, default=0.0)
    allocated_quantity = Column(Float, default=0.0)
    available_quantity = Column(Float, default=0.0)
    deleted_at = Column(DateTime)


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    vendor_id = Column(String(50))
    order_date = Column(Date, nullable=False)
    status = Column(String(20), default='DRAFT')
    deleted_at = Column(DateTime)

    lines = relationship("PurchaseOrderLine", back_populates="purchase_order")


class PurchaseOrderLine(Base):
    __tablename__ = 'purchase_order_lines'

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(Integer, ForeignKey('purchase_orders.id'), nullable=False)
    material_id = Column(String(50), nullable=False)
    quantity = Column(Float, default=0.0)
    received_quantity = Column(Float, default=0.0)
    deleted_at = Column(DateTime)

    purchase_order = relationship("PurchaseOrder", back_populates="lines")
    receipts = relationship("Receipt", back_populates="purchase_order_line")


class Receipt(Base):
    __tablename__ = 'receipts'

    id = Column(Integer, primary_key=True)
    purchase_order_line_id = Column(Integer, ForeignKey('purchase_order_lines.id'), nullable=False)
    receipt_date = Column(Date, nullable=False)
    quantity = Column(Float, default=0.0)

    purchase_order_line = relationship("PurchaseOrderLine", back_populates="receipts")


class InventoryTransaction(Base):
    __tablename__ = 'inventory_transactions'

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(50), nullable=False)
    facility_id = Column(String(50), nullable=False)
    material_id = Column(String(50), nullable=False)
    transaction_type = Column(Enum(TransactionType), nullable=False)
    transaction_timestamp = Column(DateTime, nullable=False)
    quantity = Column(Float, nullable=False)  # negative for consumption
    uom = Column(String(20), default='UNITS')
    sales_order_id = Column(String(50))
    production_order_id = Column(String(50))
    deleted_at = Column(DateTime)
