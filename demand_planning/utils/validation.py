from typing import Dict, Optional

from demand_planning.db.interface import PlanningScope
from demand_planning.exceptions import ValidationError

def scope_errors(
    tenant_id: Optional[str],
    facility_id: Optional[str],
    material_id: Optional[str] = None,
    require_material: bool = True
) -> Dict[str, str]:
    """Validate planning scope identifiers.

    Args:
        tenant_id: Tenant ID
        facility_id: Facility ID
        material_id: Material ID
        require_material: Whether the material ID is mandatory

    Returns:
        Dictionary with validation errors
    """
    errors = {}

    if not tenant_id:
        errors['tenant_id'] = 'Tenant ID is required'

    if not facility_id:
        errors['facility_id'] = 'Facility ID is required'

    if require_material and not material_id:
        errors['material_id'] = 'Material ID is required'

    return errors

def validate_scope(scope: PlanningScope) -> PlanningScope:
    """Reject a scope with missing identifiers.

    Raises:
        ValidationError: If any identifier is missing
    """
    if scope is None:
        raise ValidationError("Planning scope is required")

    errors = scope_errors(scope.tenant_id, scope.facility_id, scope.material_id)
    if errors:
        raise ValidationError("Invalid planning scope", details=errors)

    return scope

def validate_tenant_facility(tenant_id: Optional[str], facility_id: Optional[str]) -> None:
    errors = scope_errors(tenant_id, facility_id, require_material=False)
    if errors:
        raise ValidationError("Invalid planning scope", details=errors)

def validate_horizon(horizon_days: int) -> int:
    """Check that a forecast horizon is a positive number of days."""
    if horizon_days is None or horizon_days <= 0:
        raise ValidationError(
            f"Forecast horizon must be positive, got {horizon_days}",
            details={'horizon_days': horizon_days}
        )
    return horizon_days

def validate_service_level(service_level: float) -> float:
    if service_level is None or not 0 < service_level < 1:
        raise ValidationError(
            f"Service level must be between 0 and 1, got {service_level}",
            details={'service_level': service_level}
        )
    return service_level

def validate_date_range(start_date, end_date) -> None:
    if start_date is None or end_date is None:
        raise ValidationError("Start and end dates are required")
    if end_date < start_date:
        raise ValidationError(
            f"End date {end_date} is before start date {start_date}",
            details={'start_date': str(start_date), 'end_date': str(end_date)}
        )
