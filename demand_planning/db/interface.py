from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

import numpy as np
from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from demand_planning.models import (
    Material, MaterialSupplier, Lot, PurchaseOrder, PurchaseOrderLine, Receipt,
    InventoryTransaction, CONSUMPTION_TRANSACTION_TYPES, OPEN_PURCHASE_ORDER_STATUSES
)
from demand_planning.exceptions import DatabaseError

@dataclass(frozen=True)
class PlanningScope:
    """Tenant, facility and material triple every planning query is keyed by."""
    tenant_id: str
    facility_id: str
    material_id: str

@dataclass
class InventoryPosition:
    on_hand_quantity: float = 0.0
    allocated_quantity: float = 0.0
    available_quantity: float = 0.0
    on_order_quantity: float = 0.0

@dataclass
class MaterialInfo:
    material_id: str
    primary_uom: str = 'UNITS'
    minimum_order_quantity: float = 1.0
    order_multiple: float = 1.0
    lead_time_days: int = 14
    last_cost: Optional[float] = None
    standard_cost: Optional[float] = None
    preferred_vendor_id: Optional[str] = None
    target_forecast_accuracy_pct: Optional[float] = None
    forecasting_enabled: bool = True
    safety_stock_quantity: Optional[float] = None

@dataclass
class LeadTimeStatistics:
    avg_lead_time_days: float
    std_dev_lead_time_days: float
    sample_size: int

@dataclass
class ConsumptionTransaction:
    material_id: str
    transaction_type: str
    quantity: float
    transaction_timestamp: datetime
    uom: str = 'UNITS'
    sales_order_id: Optional[str] = None
    production_order_id: Optional[str] = None


class PlanningDataSource(ABC):
    """Read contracts onto inventory, purchasing and material master data."""

    @abstractmethod
    def get_inventory_position(self, tenant_id: str, facility_id: str, material_id: str) -> InventoryPosition:
        """Current inventory position for released lots plus open purchase orders."""
        pass

    @abstractmethod
    def get_material_info(self, material_id: str) -> Optional[MaterialInfo]:
        """Planning attributes from the material master, or None if unknown."""
        pass

    @abstractmethod
    def get_lead_time_statistics(self, tenant_id: str, material_id: str, since: date) -> Optional[LeadTimeStatistics]:
        """Order-to-receipt lead time statistics for orders placed on or after `since`."""
        pass

    @abstractmethod
    def get_consumption_transactions(
        self,
        tenant_id: str,
        facility_id: str,
        start_date: date,
        end_date: date
    ) -> List[ConsumptionTransaction]:
        """Negative-quantity issue, scrap and transfer transactions in a date range."""
        pass

    @abstractmethod
    def get_active_material_ids(self, tenant_id: str, facility_id: str) -> List[str]:
        """Forecasting-enabled materials stocked at the facility."""
        pass

    @abstractmethod
    def update_planning_parameters(
        self,
        material_id: str,
        safety_stock: float,
        reorder_point: float,
        economic_order_quantity: float,
        updated_by: Optional[str] = None
    ) -> None:
        """Write computed planning parameters back to the material master."""
        pass


class SqlPlanningDataSource(PlanningDataSource):
    """PlanningDataSource backed by the reference tables in the planning database."""

    def __init__(self, session: Session):
        """Initialize with a SQLAlchemy session."""
        self.session = session

    def get_inventory_position(self, tenant_id: str, facility_id: str, material_id: str) -> InventoryPosition:
        on_hand, allocated, available = self.session.query(
            func.coalesce(func.sum(Lot.current_quantity), 0.0),
            func.coalesce(func.sum(Lot.allocated_quantity), 0.0),
            func.coalesce(func.sum(Lot.available_quantity), 0.0)
        ).filter(
            Lot.tenant_id == tenant_id,
            Lot.facility_id == facility_id,
            Lot.material_id == material_id,
            Lot.quality_status == 'RELEASED',
            Lot.deleted_at.is_(None)
        ).one()

        on_order = self.session.query(
            func.coalesce(func.sum(PurchaseOrderLine.quantity - PurchaseOrderLine.received_quantity), 0.0)
        ).join(
            PurchaseOrder, PurchaseOrderLine.purchase_order_id == PurchaseOrder.id
        ).filter(
            PurchaseOrder.tenant_id == tenant_id,
            PurchaseOrder.facility_id == facility_id,
            PurchaseOrderLine.material_id == material_id,
            PurchaseOrder.status.in_(OPEN_PURCHASE_ORDER_STATUSES),
            PurchaseOrderLine.deleted_at.is_(None),
            PurchaseOrder.deleted_at.is_(None)
        ).scalar()

        return InventoryPosition(
            on_hand_quantity=float(on_hand),
            allocated_quantity=float(allocated),
            available_quantity=float(available),
            on_order_quantity=float(on_order or 0.0)
        )

    def get_material_info(self, material_id: str) -> Optional[MaterialInfo]:
        material = self.session.query(Material).filter(
            Material.id == material_id,
            Material.deleted_at.is_(None)
        ).first()

        if not material:
            return None

        preferred = self.session.query(MaterialSupplier.vendor_id).filter(
            MaterialSupplier.material_id == material_id,
            MaterialSupplier.is_preferred.is_(True),
            MaterialSupplier.deleted_at.is_(None)
        ).order_by(MaterialSupplier.created_at.desc()).first()

        return MaterialInfo(
            material_id=material.id,
            primary_uom=material.primary_uom or 'UNITS',
            minimum_order_quantity=material.minimum_order_quantity or 1.0,
            order_multiple=material.order_multiple or 1.0,
            lead_time_days=material.lead_time_days or 14,
            last_cost=material.last_cost,
            standard_cost=material.standard_cost,
            preferred_vendor_id=preferred[0] if preferred else None,
            target_forecast_accuracy_pct=material.target_forecast_accuracy_pct,
            forecasting_enabled=bool(material.forecasting_enabled),
            safety_stock_quantity=material.safety_stock_quantity
        )

    def get_lead_time_statistics(self, tenant_id: str, material_id: str, since: date) -> Optional[LeadTimeStatistics]:
        # First receipt per purchase order
        rows = self.session.query(
            PurchaseOrder.id,
            PurchaseOrder.order_date,
            func.min(Receipt.receipt_date)
        ).join(
            PurchaseOrderLine, PurchaseOrderLine.purchase_order_id == PurchaseOrder.id
        ).join(
            Receipt, Receipt.purchase_order_line_id == PurchaseOrderLine.id
        ).filter(
            PurchaseOrder.tenant_id == tenant_id,
            PurchaseOrderLine.material_id == material_id,
            PurchaseOrder.order_date >= since,
            PurchaseOrder.deleted_at.is_(None),
            PurchaseOrderLine.deleted_at.is_(None)
        ).group_by(PurchaseOrder.id, PurchaseOrder.order_date).all()

        lead_times = [
            (receipt_date - order_date).days
            for _, order_date, receipt_date in rows
            if receipt_date is not None
        ]

        if not lead_times:
            return None

        values = np.array(lead_times, dtype=float)
        return LeadTimeStatistics(
            avg_lead_time_days=float(np.mean(values)),
            std_dev_lead_time_days=float(np.std(values)),
            sample_size=len(lead_times)
        )

    def get_consumption_transactions(
        self,
        tenant_id: str,
        facility_id: str,
        start_date: date,
        end_date: date
    ) -> List[ConsumptionTransaction]:
        start_ts = datetime.combine(start_date, datetime.min.time())
        end_ts = datetime.combine(end_date, datetime.max.time())

        transactions = self.session.query(InventoryTransaction).filter(
            InventoryTransaction.tenant_id == tenant_id,
            InventoryTransaction.facility_id == facility_id,
            InventoryTransaction.transaction_type.in_(CONSUMPTION_TRANSACTION_TYPES),
            InventoryTransaction.quantity < 0,
            InventoryTransaction.transaction_timestamp >= start_ts,
            InventoryTransaction.transaction_timestamp <= end_ts,
            InventoryTransaction.deleted_at.is_(None)
        ).order_by(InventoryTransaction.transaction_timestamp).all()

        return [
            ConsumptionTransaction(
                material_id=t.material_id,
                transaction_type=t.transaction_type.value,
                quantity=t.quantity,
                transaction_timestamp=t.transaction_timestamp,
                uom=t.uom or 'UNITS',
                sales_order_id=t.sales_order_id,
                production_order_id=t.production_order_id
            )
            for t in transactions
        ]

    def get_active_material_ids(self, tenant_id: str, facility_id: str) -> List[str]:
        stocked = self.session.query(Lot.id).filter(
            and_(
                Lot.material_id == Material.id,
                Lot.facility_id == facility_id,
                Lot.deleted_at.is_(None)
            )
        ).exists()

        rows = self.session.query(Material.id).filter(
            Material.tenant_id == tenant_id,
            Material.forecasting_enabled.is_(True),
            Material.deleted_at.is_(None),
            stocked
        ).order_by(Material.id).all()

        return [row[0] for row in rows]

    def update_planning_parameters(
        self,
        material_id: str,
        safety_stock: float,
        reorder_point: float,
        economic_order_quantity: float,
        updated_by: Optional[str] = None
    ) -> None:
        material = self.session.get(Material, material_id)
        if not material:
            raise DatabaseError(f"Material {material_id} not found")

        material.safety_stock_quantity = safety_stock
        material.reorder_point = reorder_point
        material.economic_order_quantity = economic_order_quantity
        material.updated_by = updated_by
        self.session.flush()
