from datetime import datetime, timedelta, timezone

from rds_consolidator.classifier import ClusterRole, Instance, InstanceFacts
from rds_consolidator.config import ReportConfig

GIB = 1024 * 1024 * 1024

END_TIME = datetime(2025, 6, 13, 12, 0, tzinfo=timezone.utc)


def report_config(**overrides) -> ReportConfig:
    values = dict(
        account_id='123456789012',
        region='us-east-1',
        period_days=2,
        start_time=END_TIME - timedelta(days=2),
        end_time=END_TIME,
        run_timestamp='20250613_120000',
        display_date_format='%Y-%m-%d %H:%M',
    )
    values.update(overrides)
    return ReportConfig(**values)


def hour(n) -> datetime:
    return datetime(2025, 6, 13, n, 0, tzinfo=timezone.utc)


def instance_record(identifier='db-1', instance_class='db.m5.xlarge', engine='postgres', **extra) -> dict:
    record = {
        'DBInstanceIdentifier': identifier,
        'DBInstanceClass': instance_class,
        'Engine': engine,
        'EngineVersion': '15.4',
        'AllocatedStorage': 100,
        'StorageType': 'gp3',
        'MultiAZ': False,
    }
    record.update(extra)
    return record


def instance(**kwargs) -> Instance:
    return Instance.from_api(instance_record(**kwargs))


def facts(inst=None, **overrides) -> InstanceFacts:
    values = dict(
        instance=inst or instance(),
        is_serverless=False,
        vcpus=4,
        memory_gib=16.0,
        cluster_role=ClusterRole.NOT_APPLICABLE,
        is_replica=False,
        replica_primary='None',
        cluster_volume_gb=None,
        service_type='RDS',
    )
    values.update(overrides)
    return InstanceFacts(**values)


def datapoint(timestamp, average=None, maximum=None) -> dict:
    dp = {'Timestamp': timestamp, 'Unit': 'Percent'}
    if average is not None:
        dp['Average'] = average
    if maximum is not None:
        dp['Maximum'] = maximum
    return dp
