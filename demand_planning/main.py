import argparse
import json
import sys

from demand_planning.config import config
from demand_planning.db import db, session_scope
from demand_planning.exceptions import PlanningError
from demand_planning.logging_setup import logger, get_logger
from demand_planning.utils.date_utils import convert_to_date

log = get_logger('cli')


def init_application(connection_string=None):
    """Initialize application components."""
    db.initialize(connection_string)

    logger.app_logger.info("Demand planning engine initialized")
    logger.app_logger.info(f"Trailing window: {config.planning_config['trailing_window_days']} days")

    return True


def _print(result):
    print(json.dumps(result, indent=2, default=str))


def setup_database(args):
    """Create (optionally after dropping) the database tables."""
    if args.drop:
        log.info("Dropping all existing tables...")
        db.drop_all_tables()

    log.info("Creating database tables...")
    db.create_all_tables()
    log.info("Database tables created successfully.")
    return {'status': 'ok', 'dropped': bool(args.drop)}


def run_baseline(args):
    from demand_planning.services.baseline_service import BaselineService

    service = BaselineService()
    result = service.baseline_for(
        convert_to_date(args.start),
        convert_to_date(args.end),
        args.channel,
        args.country,
        args.ring_basis
    )

    if args.save_weights:
        from demand_planning.services.forecast_service import ChannelForecastService

        with session_scope() as session:
            ChannelForecastService(session, network=service.network).refresh_auto_weights(
                result, updated_by=args.user
            )

    return result.to_dict()


def run_projection(args):
    from demand_planning.services.forecast_service import ChannelForecastService

    with session_scope() as session:
        return ChannelForecastService(session).get_projection(args.channel, args.country)


def run_generate(args):
    from demand_planning.services.forecast_service import ChannelForecastService

    with session_scope() as session:
        written = ChannelForecastService(session).generate_forecasts(
            args.channel, args.country, created_by=args.user
        )
    return {'channel_group': args.channel, 'country_bucket': args.country, 'rows_written': written}


def run_forecast_summary(args):
    from demand_planning.services.forecast_service import ChannelForecastService

    with session_scope() as session:
        return ChannelForecastService(session).get_forecast_summary()


def run_stock_report(args):
    from demand_planning.services.stock_analysis_service import StockAnalysisService

    with session_scope() as session:
        return StockAnalysisService(session).build_report(
            include_pendency=args.pendency, window_days=args.window
        )


def run_replenishment_plan(args):
    from demand_planning.services.replenishment_service import ReplenishmentService

    with session_scope() as session:
        return ReplenishmentService(session).build_plan(
            target_days=args.target_days, window_days=args.window
        )


def build_parser():
    parser = argparse.ArgumentParser(description='Channel Demand Allocation & Replenishment Planning')
    parser.add_argument('--db-url', type=str, help='Database URL (overrides configuration)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    setup_parser = subparsers.add_parser('setup-db', help='Set up the database schema')
    setup_parser.add_argument('--drop', action='store_true', help='Drop existing tables before setup')
    setup_parser.set_defaults(handler=setup_database)

    baseline_parser = subparsers.add_parser('baseline', help='Compute a channel/country baseline')
    baseline_parser.add_argument('--channel', required=True, help='Channel group')
    baseline_parser.add_argument('--country', help='Country bucket')
    baseline_parser.add_argument('--start', required=True, help='Window start (YYYY-MM-DD)')
    baseline_parser.add_argument('--end', required=True, help='Window end (YYYY-MM-DD)')
    baseline_parser.add_argument('--ring-basis', help='Ring basis filter')
    baseline_parser.add_argument('--save-weights', action='store_true',
                                 help='Refresh saved auto weights from the baseline')
    baseline_parser.add_argument('--user', help='User recorded on saved rows')
    baseline_parser.set_defaults(handler=run_baseline)

    projection_parser = subparsers.add_parser('projection', help='Show the monthly projection of a scope')
    projection_parser.add_argument('--channel', required=True, help='Channel group')
    projection_parser.add_argument('--country', help='Country bucket')
    projection_parser.set_defaults(handler=run_projection)

    generate_parser = subparsers.add_parser('generate', help='Materialize per-SKU forecasts of a scope')
    generate_parser.add_argument('--channel', required=True, help='Channel group')
    generate_parser.add_argument('--country', help='Country bucket')
    generate_parser.add_argument('--user', help='User recorded on saved rows')
    generate_parser.set_defaults(handler=run_generate)

    summary_parser = subparsers.add_parser('forecast-summary', help='Summarize saved forecasts')
    summary_parser.set_defaults(handler=run_forecast_summary)

    report_parser = subparsers.add_parser('stock-report', help='Stock status report across locations')
    report_parser.add_argument('--pendency', action='store_true', help='Include open order counts')
    report_parser.add_argument('--window', type=int, help='Trailing window in days')
    report_parser.set_defaults(handler=run_stock_report)

    plan_parser = subparsers.add_parser('replenishment-plan', help='Replenishment plan for fulfillment locations')
    plan_parser.add_argument('--target-days', type=int, help='Target days of cover for every location')
    plan_parser.add_argument('--window', type=int, help='Trailing window in days')
    plan_parser.set_defaults(handler=run_replenishment_plan)

    return parser


def main(argv=None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'handler', None):
        parser.print_help()
        return 1

    try:
        init_application(args.db_url)
        _print(args.handler(args))
        return 0
    except PlanningError as e:
        log.error(f"{args.command} failed: {str(e)}")
        _print(e.to_dict())
        return 2


if __name__ == "__main__":
    sys.exit(main())
