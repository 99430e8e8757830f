"""
CloudWatch metric fetching

One GetMetricStatistics call per (identifier, metric) pair, hourly period,
over the run's time window. A failed call is logged and treated as "no
datapoints" so that the affected report columns fall back to zero instead of
aborting the run.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from .config import METRIC_NAMESPACE, METRIC_PERIOD_SECONDS

logger = logging.getLogger(__name__)

INSTANCE_DIMENSION = 'DBInstanceIdentifier'
CLUSTER_DIMENSION = 'DBClusterIdentifier'

CPU_UTILIZATION = 'CPUUtilization'
SERVERLESS_CAPACITY = 'ServerlessDatabaseCapacity'
FREEABLE_MEMORY = 'FreeableMemory'
FREE_STORAGE_SPACE = 'FreeStorageSpace'
DATABASE_CONNECTIONS = 'DatabaseConnections'
READ_IOPS = 'ReadIOPS'
WRITE_IOPS = 'WriteIOPS'
VOLUME_BYTES_USED = 'VolumeBytesUsed'


@dataclass(frozen=True)
class MetricSample:
    timestamp: datetime
    average: Optional[float] = None
    maximum: Optional[float] = None


def _parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, str) and value.strip():
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    # CloudWatch reports UTC; naive values are read as such
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_datapoints(datapoints) -> List[MetricSample]:
    """Convert raw CloudWatch datapoints into samples, dropping those without a usable timestamp"""
    samples = []
    for dp in datapoints:
        timestamp = _parse_timestamp(dp.get('Timestamp'))
        if timestamp is None:
            logger.debug(f"Skipping datapoint without timestamp: {dp}")
            continue
        samples.append(MetricSample(
            timestamp=timestamp,
            average=_to_float(dp.get('Average')),
            maximum=_to_float(dp.get('Maximum')),
        ))
    return sorted(samples, key=lambda s: s.timestamp)


def fetch_metric(cloudwatch, config, metric_name: str, identifier: str,
                 dimension: str = INSTANCE_DIMENSION,
                 statistics: Sequence[str] = ('Average', 'Maximum')) -> List[MetricSample]:
    """
    Fetch hourly samples of one metric for one instance or cluster

    Args:
        cloudwatch: boto3 CloudWatch client
        config: ReportConfig supplying the time window
        metric_name: AWS/RDS metric name
        identifier: DB instance or DB cluster identifier
        dimension: dimension name matching the identifier kind
        statistics: statistics to request

    Returns:
        Samples sorted by timestamp; empty if the call failed
    """
    try:
        response = cloudwatch.get_metric_statistics(
            Namespace=METRIC_NAMESPACE,
            MetricName=metric_name,
            Dimensions=[
                {
                    'Name': dimension,
                    'Value': identifier
                }
            ],
            StartTime=config.start_time,
            EndTime=config.end_time,
            Period=METRIC_PERIOD_SECONDS,
            Statistics=list(statistics)
        )
    except (BotoCoreError, ClientError) as e:
        logger.warning(f"Failed to get {metric_name} metrics for {identifier}: {str(e)}")
        return []

    samples = parse_datapoints(response.get('Datapoints', []))
    logger.debug(f"{metric_name} for {identifier}: {len(samples)} datapoints")
    return samples


def latest_average(samples: Sequence[MetricSample]) -> Optional[float]:
    """Average value of the most recent sample"""
    if not samples:
        return None
    return max(samples, key=lambda s: s.timestamp).average
