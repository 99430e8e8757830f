"""
Environment checks run before any data collection

Each check makes the cheapest possible call that exercises one permission the
report needs, so that a missing permission is reported up front instead of
surfacing as a report full of zero-filled rows.
"""
import logging
from datetime import timedelta

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class PreflightError(Exception):
    """Raised when the environment cannot support a report run"""


def get_account_id(sts_client) -> str:
    """Return the caller's account id, failing if credentials are unusable"""
    try:
        return sts_client.get_caller_identity()['Account']
    except (BotoCoreError, ClientError) as e:
        raise PreflightError(f"Unable to authenticate with AWS. Please check your AWS credentials and configuration: {str(e)}") from e


def _probe(description, permission, call, **kwargs):
    try:
        call(**kwargs)
    except (BotoCoreError, ClientError) as e:
        raise PreflightError(f"Insufficient permissions to {description}. Required permission: {permission} ({str(e)})") from e
    logger.info(f"{permission} permission check passed")


def check_permissions(clients, config):
    """Probe every permission the report relies on"""
    logger.info("Checking AWS permissions...")

    _probe('list RDS instances', 'rds:DescribeDBInstances',
           clients.rds.describe_db_instances, MaxRecords=20)
    _probe('list RDS clusters', 'rds:DescribeDBClusters',
           clients.rds.describe_db_clusters, MaxRecords=20)
    _probe('list CloudWatch metrics', 'cloudwatch:ListMetrics',
           clients.cloudwatch.list_metrics, Namespace='AWS/RDS')
    _probe('get CloudWatch metric statistics', 'cloudwatch:GetMetricStatistics',
           clients.cloudwatch.get_metric_statistics,
           Namespace='AWS/RDS',
           MetricName='CPUUtilization',
           StartTime=config.end_time - timedelta(hours=1),
           EndTime=config.end_time,
           Period=3600,
           Statistics=['Average'])

    logger.info("AWS permission checks completed successfully")
