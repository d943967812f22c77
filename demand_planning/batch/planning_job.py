# demand_planning/batch/planning_job.py
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from demand_planning.config import config
from demand_planning.db import session_scope, PlanningScope, SqlPlanningDataSource
from demand_planning.services.demand_history_service import DemandHistoryService
from demand_planning.services.forecast_service import ForecastService
from demand_planning.services.accuracy_service import AccuracyService
from demand_planning.services.safety_stock_service import SafetyStockService
from demand_planning.services.replenishment_service import ReplenishmentService
from demand_planning.exceptions import NoForecastDataError, BatchProcessError
from demand_planning.logging_setup import get_logger, log_exception, log_manager

logger = get_logger('planning_job')

BATCH_USER = 'PLANNING_JOB'

def resolve_material_ids(tenant_id: str, facility_id: str, material_ids: Optional[List[str]] = None) -> List[str]:
    """Explicit material IDs, or every active material at the facility."""
    if material_ids:
        return list(material_ids)

    with session_scope() as session:
        return SqlPlanningDataSource(session).get_active_material_ids(tenant_id, facility_id)

def backfill_demand(tenant_id: str, facility_id: str, as_of: date) -> Dict:
    """Aggregate recent consumption transactions into demand history.

    Returns:
        Dictionary with backfill results
    """
    start_date = as_of - timedelta(days=config.batch_config['backfill_days'])
    logger.info(f"Backfilling demand history from {start_date} to {as_of}")

    with session_scope() as session:
        inserted = DemandHistoryService(session).backfill_demand_history(tenant_id, facility_id, start_date, as_of)

    return {'success': True, 'inserted_rows': inserted}

def reconcile_forecasts(tenant_id: str, facility_id: str, material_ids: List[str], as_of: date) -> Dict:
    """Attach applicable forecasts to recent history days."""
    period_start = as_of - timedelta(days=config.batch_config['accuracy_period_days'])
    period_end = as_of - timedelta(days=1)
    logger.info(f"Reconciling forecasts with actuals from {period_start} to {period_end}")

    updated = 0
    with session_scope() as session:
        forecast_service = ForecastService(session)
        for material_id in material_ids:
            updated += forecast_service.reconcile_forecasts_with_actuals(
                PlanningScope(tenant_id, facility_id, material_id), period_start, period_end, BATCH_USER
            )

    return {'success': True, 'updated_days': updated}

def generate_forecasts(
    tenant_id: str,
    facility_id: str,
    material_ids: List[str],
    as_of: date,
    horizon_days: Optional[int] = None,
    algorithm: str = 'AUTO'
) -> Dict:
    logger.info(f"Generating forecasts for {len(material_ids)} materials")

    with session_scope() as session:
        rows = ForecastService(session).generate_forecasts(
            tenant_id, facility_id, material_ids, horizon_days, algorithm, BATCH_USER, as_of
        )
        forecasted = sorted({row.material_id for row in rows})

    return {
        'success': True,
        'forecast_rows': len(rows),
        'materials_forecasted': len(forecasted),
        'materials_skipped': len(material_ids) - len(forecasted)
    }

def measure_accuracy(tenant_id: str, facility_id: str, material_ids: List[str], as_of: date) -> Dict:
    """Compute accuracy metrics for the trailing accuracy period."""
    period_start = as_of - timedelta(days=config.batch_config['accuracy_period_days'])
    period_end = as_of - timedelta(days=1)
    logger.info(f"Measuring forecast accuracy from {period_start} to {period_end}")

    measured = 0
    no_data = 0
    outside_tolerance = []

    with session_scope() as session:
        accuracy_service = AccuracyService(session)
        for material_id in material_ids:
            scope = PlanningScope(tenant_id, facility_id, material_id)
            try:
                metric = accuracy_service.calculate_accuracy_metrics(
                    scope, period_start, period_end, created_by=BATCH_USER
                )
            except NoForecastDataError:
                no_data += 1
                continue

            measured += 1
            if not metric.is_within_tolerance:
                outside_tolerance.append(material_id)

    if outside_tolerance:
        logger.warning(f"{len(outside_tolerance)} materials outside MAPE tolerance: {', '.join(outside_tolerance)}")

    return {
        'success': True,
        'materials_measured': measured,
        'materials_without_forecasts': no_data,
        'outside_tolerance': outside_tolerance
    }

def update_planning_parameters(tenant_id: str, facility_id: str, material_ids: List[str], as_of: date) -> Dict:
    """Recalculate safety stock, reorder point and EOQ and store them on the material."""
    logger.info(f"Updating planning parameters for {len(material_ids)} materials")

    updated = 0
    errors = 0
    with session_scope() as session:
        safety_stock_service = SafetyStockService(session)
        for material_id in material_ids:
            try:
                with session.begin_nested():
                    result = safety_stock_service.calculate_safety_stock(
                        PlanningScope(tenant_id, facility_id, material_id), as_of=as_of
                    )
                    safety_stock_service.update_material_planning_parameters(
                        material_id,
                        result.safety_stock_quantity,
                        result.reorder_point,
                        result.economic_order_quantity,
                        BATCH_USER
                    )
                updated += 1
            except Exception as e:
                log_exception(logger, e, f"Error updating planning parameters for {material_id}")
                errors += 1

    return {'success': errors == 0, 'updated_materials': updated, 'errors': errors}

def generate_recommendations(tenant_id: str, facility_id: str, material_ids: List[str], as_of: date) -> Dict:
    logger.info(f"Generating replenishment recommendations for {len(material_ids)} materials")

    with session_scope() as session:
        suggestions = ReplenishmentService(session).generate_recommendations(
            tenant_id, facility_id, material_ids, created_by=BATCH_USER, as_of=as_of
        )
        by_urgency = {}
        for suggestion in suggestions:
            level = suggestion.urgency_level.value
            by_urgency[level] = by_urgency.get(level, 0) + 1

    return {'success': True, 'recommendations': len(suggestions), 'by_urgency': by_urgency}

def _run_step(results: Dict, run_logger, name: str, func, *args, **kwargs) -> Dict:
    """Run one job step, recording its result or its failure."""
    run_logger.info(f"Running step {name}")
    try:
        step_result = func(*args, **kwargs)
    except Exception as e:
        log_exception(run_logger, e, f"Error during {name}")
        step_result = {'success': False, 'error': str(e)}

    results['processes'][name] = step_result
    return step_result

def run_planning_job(
    tenant_id: str,
    facility_id: str,
    material_ids: Optional[List[str]] = None,
    as_of: Optional[date] = None,
    horizon_days: Optional[int] = None,
    algorithm: str = 'AUTO'
) -> Dict:
    """Run the full planning cycle for one facility.

    Steps: backfill demand history, reconcile forecasts with actuals, measure
    accuracy, generate new forecasts, refresh planning parameters and
    generate replenishment recommendations. A failing step is recorded and
    the job moves on to the next one.

    Args:
        tenant_id: Tenant ID
        facility_id: Facility ID
        material_ids: Materials to plan (defaults to all active materials)
        as_of: Planning date (defaults to today)
        horizon_days: Forecast horizon (defaults to configuration)
        algorithm: Forecast algorithm, AUTO by default

    Returns:
        Dictionary with job results
    """
    as_of = as_of or date.today()
    log_info = log_manager.batch_start_log(
        'planning_job', tenant_id, facility_id,
        {'as_of': str(as_of), 'horizon_days': horizon_days, 'algorithm': algorithm}
    )
    run_logger = log_info['logger']

    start_time = datetime.now()
    results = {
        'run_id': log_info['run_id'],
        'start_time': start_time,
        'end_time': None,
        'duration': None,
        'processes': {}
    }

    try:
        _run_step(results, run_logger, 'backfill_demand', backfill_demand, tenant_id, facility_id, as_of)

        materials = resolve_material_ids(tenant_id, facility_id, material_ids)
        if not materials:
            raise BatchProcessError(f"No active materials found for {tenant_id}/{facility_id}")
        results['materials'] = len(materials)

        _run_step(results, run_logger, 'reconcile_forecasts', reconcile_forecasts,
                  tenant_id, facility_id, materials, as_of)
        _run_step(results, run_logger, 'measure_accuracy', measure_accuracy,
                  tenant_id, facility_id, materials, as_of)
        _run_step(results, run_logger, 'generate_forecasts', generate_forecasts,
                  tenant_id, facility_id, materials, as_of, horizon_days, algorithm)
        _run_step(results, run_logger, 'update_planning_parameters', update_planning_parameters,
                  tenant_id, facility_id, materials, as_of)
        _run_step(results, run_logger, 'generate_recommendations', generate_recommendations,
                  tenant_id, facility_id, materials, as_of)

        results['success'] = all(step.get('success', False) for step in results['processes'].values())
    except Exception as e:
        log_exception(run_logger, e, "Error during planning job")
        results['success'] = False
        results['error'] = str(e)

    results['end_time'] = datetime.now()
    results['duration'] = results['end_time'] - start_time

    log_manager.batch_end_log(log_info, success=results['success'], result_info=results['processes'])
    return results
