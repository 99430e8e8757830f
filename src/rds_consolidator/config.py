import os
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import boto3

logger = logging.getLogger(__name__)

# Engines accepted by the optional engine filter
VALID_ENGINES = (
    'postgres',
    'sqlserver-se',
    'sqlserver-ee',
    'sqlserver-ex',
    'sqlserver-web',
    'mariadb',
    'aurora-mysql',
    'aurora-postgresql',
    'db2-se',
    'oracle',
    'mysql',
)

# Engines whose storage and writer/reader role live at the cluster level
CLUSTER_ENGINES = ('aurora-mysql', 'aurora-postgresql')

SERVERLESS_INSTANCE_CLASS = 'db.serverless'

METRIC_NAMESPACE = 'AWS/RDS'
METRIC_PERIOD_SECONDS = 3600

DEFAULT_PERIOD_DAYS = 2
MIN_PERIOD_DAYS = 1
MAX_PERIOD_DAYS = 99

DEFAULT_DISPLAY_DATE_FORMAT = '%Y-%m-%d %H:%M'
DEFAULT_OUTPUT_DIR = './rds_reports'


@dataclass(frozen=True)
class ReportConfig:
    """Run-wide settings, resolved once at start-up and shared read-only"""
    account_id: str
    region: str
    period_days: int
    start_time: datetime
    end_time: datetime
    run_timestamp: str
    engine_filter: Optional[str] = None
    display_date_format: str = DEFAULT_DISPLAY_DATE_FORMAT
    output_dir: str = DEFAULT_OUTPUT_DIR
    excel: bool = False


def validate_period(value) -> int:
    """
    Validate the collection period in days

    Accepts an int or a string of decimal digits between 1 and 99.
    Raises ValueError otherwise.
    """
    if isinstance(value, bool):
        raise ValueError(f"{value}, the collection period, is not an integer between {MIN_PERIOD_DAYS} and {MAX_PERIOD_DAYS}")
    if isinstance(value, int):
        period = value
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        period = int(value)
    else:
        raise ValueError(f"{value}, the collection period, is not an integer between {MIN_PERIOD_DAYS} and {MAX_PERIOD_DAYS}")

    if period < MIN_PERIOD_DAYS or period > MAX_PERIOD_DAYS:
        raise ValueError(f"{value}, the collection period, is not an integer between {MIN_PERIOD_DAYS} and {MAX_PERIOD_DAYS}")
    return period


def validate_engine(engine: Optional[str]) -> Optional[str]:
    """Return the engine filter unchanged if it is empty or a supported engine"""
    if not engine:
        return None
    if engine not in VALID_ENGINES:
        raise ValueError(f"Invalid engine type '{engine}'. Valid engines are: {' '.join(VALID_ENGINES)}")
    return engine


def time_window(period_days: int, now: Optional[datetime] = None):
    """Return (start_time, end_time) in UTC, start being exactly period_days before end"""
    end_time = now or datetime.now(timezone.utc)
    start_time = end_time - timedelta(days=period_days)
    return start_time, end_time


def get_aws_region(explicit_region: Optional[str] = None) -> Optional[str]:
    """
    Resolve the AWS region to work in

    Order: explicit value, AWS_REGION, AWS_DEFAULT_REGION, boto3 session default.
    'aws-global' is never a usable region.
    """
    candidates = [
        explicit_region,
        os.environ.get('AWS_REGION'),
        os.environ.get('AWS_DEFAULT_REGION'),
    ]
    for region in candidates:
        if region and region != 'aws-global':
            return region

    region = boto3.session.Session().region_name
    if region and region != 'aws-global':
        return region
    return None


def build_config(account_id: str, region: str, period_days: int, engine_filter: Optional[str] = None,
                 display_date_format: str = DEFAULT_DISPLAY_DATE_FORMAT, output_dir: str = DEFAULT_OUTPUT_DIR,
                 excel: bool = False, now: Optional[datetime] = None) -> ReportConfig:
    start_time, end_time = time_window(period_days, now)
    run_timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')

    config = ReportConfig(
        account_id=account_id,
        region=region,
        period_days=period_days,
        start_time=start_time,
        end_time=end_time,
        run_timestamp=run_timestamp,
        engine_filter=engine_filter,
        display_date_format=display_date_format,
        output_dir=output_dir,
        excel=excel,
    )
    logger.debug(f"Report configuration: {config}")
    return config
