import sys
import logging
import argparse

from botocore.exceptions import BotoCoreError, ClientError

from .aws import create_clients
from .config import (
    DEFAULT_DISPLAY_DATE_FORMAT,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PERIOD_DAYS,
    VALID_ENGINES,
    build_config,
    get_aws_region,
    validate_engine,
    validate_period,
)
from .preflight import PreflightError, check_permissions, get_account_id
from .report import ReportAssembler, write_reports

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EPILOG = """Valid engine types:
  {engines}

Examples:
  rds-report              # Uses default 2-day period, all engines
  rds-report 5            # 5-day period, all engines
  rds-report 3 postgres   # 3-day period, postgres only
  rds-report 2 mysql      # 2-day period, mysql only
""".format(engines='\n  '.join(VALID_ENGINES))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='rds-report',
        description='Generate RDS metrics report for specified period and optionally filter by engine type. '
                    'Also generates a CSV file listing all RDS instances with their details.',
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('period', nargs='?', default=str(DEFAULT_PERIOD_DAYS),
                        help=f'Number of days to report (1-99). Default is {DEFAULT_PERIOD_DAYS}')
    parser.add_argument('engine', nargs='?', default=None,
                        help='Database engine type to filter results')
    parser.add_argument('--region',
                        help='AWS region to report on (default: AWS_REGION / AWS_DEFAULT_REGION / profile)')
    parser.add_argument('--output-dir', default=DEFAULT_OUTPUT_DIR,
                        help=f'Directory for the generated reports (default: {DEFAULT_OUTPUT_DIR})')
    parser.add_argument('--date-format', default=DEFAULT_DISPLAY_DATE_FORMAT,
                        help='strftime format of the Timestamp column (default: "%(default)s")')
    parser.add_argument('--excel', action='store_true',
                        help='Also write both tables to an Excel workbook')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def print_summary(tables, paths):
    print("\nSummary Statistics:")
    print(f"Instances processed: {tables.instances_processed}")
    print(f"Serverless instances: {tables.serverless_instances}")
    print(f"Aurora instances: {tables.cluster_instances}")
    print(f"Metric rows written: {len(tables.metrics)}")
    for kind, path in paths.items():
        print(f"{kind.capitalize()} report: {path}")


def main(argv=None):
    """
    Main execution function
    """
    args = parse_args(argv)

    # Set logging level based on debug flag
    if args.debug:
        logging.getLogger('rds_consolidator').setLevel(logging.DEBUG)
        logging.getLogger('boto3').setLevel(logging.DEBUG)
        logging.getLogger('botocore').setLevel(logging.DEBUG)

    try:
        period_days = validate_period(args.period)
        engine_filter = validate_engine(args.engine)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    if engine_filter:
        logger.info(f"Engine validation successful: {engine_filter}")
    else:
        logger.info("No engine specified, skipping validation")

    try:
        region = get_aws_region(args.region)
        if not region:
            raise PreflightError("Unable to determine AWS region. Assign AWS region to the AWS_REGION env variable")

        clients = create_clients(region)
        account_id = get_account_id(clients.sts)
        config = build_config(
            account_id=account_id,
            region=region,
            period_days=period_days,
            engine_filter=engine_filter,
            display_date_format=args.date_format,
            output_dir=args.output_dir,
            excel=args.excel,
        )
        check_permissions(clients, config)
    except (PreflightError, BotoCoreError) as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Starting RDS metrics collection for account {config.account_id} in region {config.region}")
    logger.info(f"Time interval: {config.start_time} to {config.end_time} ({config.period_days} days)")

    try:
        tables = ReportAssembler(clients, config).collect()
        paths = write_reports(tables, config)
    except (BotoCoreError, ClientError, OSError) as e:
        logger.error(f"Report generation failed: {str(e)}")
        if args.debug:
            logger.exception("Detailed error traceback:")
        sys.exit(1)

    print_summary(tables, paths)
    return 0


if __name__ == "__main__":
    main()
