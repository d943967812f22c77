import argparse
import sys
from datetime import date, timedelta

from tabulate import tabulate

from demand_planning.config import config
from demand_planning.db import db, session_scope, PlanningScope
from demand_planning.logging_setup import get_logger
from demand_planning.exceptions import DemandPlanningError
from demand_planning.utils.date_utils import convert_to_date

log = get_logger('cli')

def init_application():
    """Initialize application components."""
    db.initialize()

    app_log = get_logger('app')
    app_log.info(f"Using database: {config.get('DATABASE', 'engine')} at {config.get('DATABASE', 'host')}")

    if not db.test_connection():
        app_log.error("Database is not reachable")
        return False

    app_log.info("Demand planning engine initialized")
    return True

def _as_of(args) -> date:
    return convert_to_date(args.as_of) if args.as_of else date.today()

def _fmt(value, digits=2):
    if value is None:
        return '-'
    if isinstance(value, float):
        return f"{value:.{digits}f}"
    return value

def setup_database(drop_existing=False):
    """Create the schema, optionally dropping existing tables first."""
    try:
        db.initialize()
        if drop_existing:
            log.info("Dropping all existing tables...")
            db.drop_all_tables()

        log.info("Creating database tables...")
        db.create_all_tables()
        log.info("Database tables created successfully")
        return True
    except DemandPlanningError as e:
        log.error(f"Error setting up database: {str(e)}")
        return False

def backfill(args):
    from demand_planning.services.demand_history_service import DemandHistoryService

    end_date = _as_of(args)
    start_date = end_date - timedelta(days=args.days)

    with session_scope() as session:
        inserted = DemandHistoryService(session).backfill_demand_history(
            args.tenant_id, args.facility_id, start_date, end_date
        )

    print(f"Inserted {inserted} demand history rows for {start_date} to {end_date}")
    return inserted

def forecast(args):
    """Generate forecasts and print the committed rows."""
    from demand_planning.services.forecast_service import ForecastService

    with session_scope() as session:
        rows = ForecastService(session).generate_forecasts(
            args.tenant_id,
            args.facility_id,
            args.material_id,
            horizon_days=args.horizon,
            algorithm=args.algorithm,
            created_by=args.user,
            as_of=_as_of(args)
        )

        if not rows:
            print("No forecasts generated")
            return []

        table_data = [
            [r.material_id, r.forecast_date, r.forecast_algorithm.value, r.forecast_version,
             _fmt(r.forecasted_demand_quantity), _fmt(r.lower_bound_95_pct), _fmt(r.upper_bound_95_pct)]
            for r in rows[:args.limit]
        ]
        print(tabulate(table_data, headers=['Material', 'Date', 'Algorithm', 'Version',
                                            'Quantity', 'Lower 95%', 'Upper 95%']))
        print(f"\nTotal forecast rows: {len(rows)}")
        return rows

def accuracy(args):
    from demand_planning.services.accuracy_service import AccuracyService
    from demand_planning.exceptions import NoForecastDataError

    period_end = _as_of(args) - timedelta(days=1)
    period_start = period_end - timedelta(days=args.days - 1)

    table_data = []
    with session_scope() as session:
        service = AccuracyService(session)
        for material_id in args.material_id:
            scope = PlanningScope(args.tenant_id, args.facility_id, material_id)
            try:
                metric = service.calculate_accuracy_metrics(scope, period_start, period_end, created_by=args.user)
            except NoForecastDataError:
                table_data.append([material_id, '-', '-', '-', '-', 0, 'no forecast data', '-'])
                continue

            best = service.get_best_performing_method(scope, _as_of(args))
            table_data.append([
                material_id, _fmt(metric.mape), _fmt(metric.rmse), _fmt(metric.bias),
                _fmt(metric.tracking_signal), metric.sample_size,
                'within tolerance' if metric.is_within_tolerance else 'outside tolerance',
                best.value if best else '-'
            ])

    print(f"\nForecast accuracy {period_start} to {period_end}:")
    print(tabulate(table_data, headers=['Material', 'MAPE', 'RMSE', 'Bias', 'Tracking', 'Samples',
                                        'Status', 'Best Method']))
    return table_data

def safety_stock(args):
    from demand_planning.services.safety_stock_service import SafetyStockService

    table_data = []
    with session_scope() as session:
        service = SafetyStockService(session)
        for material_id in args.material_id:
            scope = PlanningScope(args.tenant_id, args.facility_id, material_id)
            result = service.calculate_safety_stock(scope, args.service_level, _as_of(args))

            if args.update:
                service.update_material_planning_parameters(
                    material_id, result.safety_stock_quantity, result.reorder_point,
                    result.economic_order_quantity, args.user
                )

            table_data.append([
                material_id, result.calculation_method.value, _fmt(result.safety_stock_quantity),
                _fmt(result.reorder_point), _fmt(result.economic_order_quantity),
                _fmt(result.attained_service_level, 4)
            ])

    print(tabulate(table_data, headers=['Material', 'Method', 'Safety Stock', 'Reorder Point', 'EOQ',
                                        'Service Level']))
    return table_data

def recommend(args):
    """Generate replenishment suggestions and print them by stockout date."""
    from demand_planning.services.replenishment_service import ReplenishmentService

    with session_scope() as session:
        service = ReplenishmentService(session)
        suggestions = service.generate_recommendations(
            args.tenant_id,
            args.facility_id,
            args.material_id,
            urgency_level_filter=args.urgency,
            created_by=args.user,
            as_of=_as_of(args)
        )

        if not suggestions:
            print("No replenishment needed")
            return []

        suggestions.sort(key=lambda s: (s.projected_stockout_date is None, s.projected_stockout_date or date.max))
        table_data = [
            [s.material_id, s.urgency_level.value, _fmt(s.current_available_quantity),
             s.projected_stockout_date or '-', _fmt(s.recommended_order_quantity),
             s.recommended_order_date, s.suggestion_reason]
            for s in suggestions
        ]

        print("\nReplenishment Suggestions:")
        print(tabulate(table_data, headers=['Material', 'Urgency', 'Available', 'Stockout',
                                            'Order Qty', 'Order By', 'Reason']))
        print(f"\nTotal suggestions: {len(suggestions)}")
        return suggestions

def plan(args):
    from demand_planning.batch.planning_job import run_planning_job

    results = run_planning_job(
        args.tenant_id,
        args.facility_id,
        args.material_id,
        as_of=_as_of(args),
        horizon_days=args.horizon,
        algorithm=args.algorithm
    )

    table_data = [
        [name, 'OK' if step.get('success') else 'FAILED',
         ', '.join(f"{k}={v}" for k, v in step.items() if k != 'success')]
        for name, step in results['processes'].items()
    ]
    print(tabulate(table_data, headers=['Step', 'Status', 'Details']))
    print(f"\nDuration: {results['duration']}")

    if not results['success']:
        print(f"Planning job finished with errors{': ' + results['error'] if 'error' in results else ''}")
    return results

def _add_scope_arguments(parser, materials_required=False):
    parser.add_argument('--tenant-id', required=True, help='Tenant ID')
    parser.add_argument('--facility-id', required=True, help='Facility ID')
    parser.add_argument('--material-id', action='append', required=materials_required,
                        help='Material ID (repeatable)')
    parser.add_argument('--as-of', type=str, help='Planning date, YYYY-MM-DD (defaults to today)')
    parser.add_argument('--user', type=str, default='CLI', help='User recorded on created rows')

def main():
    """Main application entry point."""
    parser = argparse.ArgumentParser(description='Demand Planning Engine')

    parser.add_argument('--setup-db', action='store_true',
                        help='Set up the database schema')
    parser.add_argument('--drop-db', action='store_true',
                        help='Drop existing tables before setup')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    backfill_parser = subparsers.add_parser('backfill', help='Build demand history from inventory transactions')
    _add_scope_arguments(backfill_parser)
    backfill_parser.add_argument('--days', type=int, default=config.batch_config['backfill_days'],
                                 help='Days of transactions to aggregate')

    forecast_parser = subparsers.add_parser('forecast', help='Generate demand forecasts')
    _add_scope_arguments(forecast_parser, materials_required=True)
    forecast_parser.add_argument('--horizon', type=int, help='Forecast horizon in days')
    forecast_parser.add_argument('--algorithm', type=str, default='AUTO',
                                 help='AUTO, MOVING_AVERAGE, EXP_SMOOTHING or HOLT_WINTERS')
    forecast_parser.add_argument('--limit', type=int, default=30, help='Rows to display')

    accuracy_parser = subparsers.add_parser('accuracy', help='Measure forecast accuracy')
    _add_scope_arguments(accuracy_parser, materials_required=True)
    accuracy_parser.add_argument('--days', type=int, default=config.batch_config['accuracy_period_days'],
                                 help='Length of the measurement period')

    ss_parser = subparsers.add_parser('safety-stock', help='Calculate safety stock, reorder point and EOQ')
    _add_scope_arguments(ss_parser, materials_required=True)
    ss_parser.add_argument('--service-level', type=float, help='Target service level, e.g. 0.95')
    ss_parser.add_argument('--update', action='store_true', help='Write results to the material master')

    recommend_parser = subparsers.add_parser('recommend', help='Generate replenishment suggestions')
    _add_scope_arguments(recommend_parser)
    recommend_parser.add_argument('--urgency', type=str, help='Only show CRITICAL, HIGH, MEDIUM or LOW')

    plan_parser = subparsers.add_parser('plan', help='Run the full planning job')
    _add_scope_arguments(plan_parser)
    plan_parser.add_argument('--horizon', type=int, help='Forecast horizon in days')
    plan_parser.add_argument('--algorithm', type=str, default='AUTO', help='Forecast algorithm')

    args = parser.parse_args()

    if args.setup_db:
        sys.exit(0 if setup_database(args.drop_db) else 1)

    commands = {
        'backfill': backfill,
        'forecast': forecast,
        'accuracy': accuracy,
        'safety-stock': safety_stock,
        'recommend': recommend,
        'plan': plan
    }

    if not init_application():
        sys.exit(1)

    if args.command not in commands:
        parser.print_help()
        return

    try:
        commands[args.command](args)
    except DemandPlanningError as e:
        log.error(f"{args.command} failed: {str(e)}")
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
