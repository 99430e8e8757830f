import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Optional

from .aligner import AlignedRow
from .classifier import BYTES_PER_GIB, InstanceFacts
from .metrics import (
    CPU_UTILIZATION,
    DATABASE_CONNECTIONS,
    FREEABLE_MEMORY,
    FREE_STORAGE_SPACE,
    READ_IOPS,
    SERVERLESS_CAPACITY,
    WRITE_IOPS,
)

METRICS_COLUMNS = [
    'Timestamp',
    'AccountID',
    'Instance Name',
    'RDS Class',
    'Engine',
    'Version',
    'Storage Type',
    'Multi-AZ',
    'Read Replica',
    'RR Primary',
    'Aurora Role',
    'vCPUs',
    'ACUs',
    'Memory(GiB)',
    'Storage(GB)',
    'Free Storage(GB)',
    'Used Storage(GB)',
    'CPU Avg%',
    'CPU Max%',
    'Avg vCPU Used',
    'Peak vCPU Used',
    'Memory Free(GiB)',
    'Memory Used%',
    'Read IOPS Avg',
    'Read IOPS Max',
    'Write IOPS Avg',
    'Write IOPS Max',
    'Max Connections',
    'Service Type',
]

INVENTORY_COLUMNS = [
    'Instance Name',
    'Engine',
    'Engine Version',
    'Instance Class',
    'Storage (GB)',
    'Multi-AZ',
    'Read Replica',
    'Read Replica Primary',
    'Aurora Role',
]


def to_number(value) -> Optional[float]:
    """Return value as a finite float, or None if it is not numeric"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _quantize(number: float, places: int) -> Decimal:
    # ROUND_HALF_UP on Decimal rounds half away from zero
    return Decimal(repr(number)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_half_up(value: float, places: int = 1) -> float:
    return float(_quantize(value, places))


def format_decimal(value, places: int = 1) -> str:
    """
    Format a numeric value with a fixed number of decimals

    Rounds half away from zero. Absent or non-numeric values become "0".
    """
    number = to_number(value)
    if number is None:
        return '0'
    try:
        rounded = _quantize(number, places)
    except InvalidOperation:
        return '0'
    if rounded == 0:
        rounded = abs(rounded)
    return f"{rounded:.{places}f}"


def format_metric(value, places: int = 1) -> str:
    """Format a CloudWatch sample, treating an absent sample as zero"""
    return format_decimal(zero_filled(value), places)


def zero_filled(value) -> float:
    number = to_number(value)
    return 0.0 if number is None else number


def _bytes_to_gib(value) -> Optional[float]:
    number = to_number(value)
    if number is None:
        return None
    return round_half_up(number / BYTES_PER_GIB, 1)


def _storage_columns(facts: InstanceFacts, aligned: AlignedRow) -> Dict[str, str]:
    if facts.is_cluster_engine:
        if facts.cluster_volume_gb is None:
            return {'Storage(GB)': '0', 'Free Storage(GB)': '0', 'Used Storage(GB)': '0'}
        volume = format_decimal(facts.cluster_volume_gb)
        return {'Storage(GB)': volume, 'Free Storage(GB)': '0', 'Used Storage(GB)': volume}

    allocated = to_number(facts.instance.allocated_storage)
    storage = str(facts.instance.allocated_storage) if allocated is not None else '0'
    free_gb = _bytes_to_gib(zero_filled(aligned.get(FREE_STORAGE_SPACE)))
    free_col = format_decimal(free_gb)
    used_col = format_decimal((allocated or 0) - free_gb)

    if facts.is_serverless:
        free_col = '0'
    return {'Storage(GB)': storage, 'Free Storage(GB)': free_col, 'Used Storage(GB)': used_col}


def _memory_columns(facts: InstanceFacts, aligned: AlignedRow) -> Dict[str, str]:
    free_gib = _bytes_to_gib(zero_filled(aligned.get(FREEABLE_MEMORY)))

    if facts.is_serverless:
        return {'Memory Free(GiB)': format_decimal(free_gib), 'Memory Used%': '0'}

    total_gib = to_number(facts.memory_gib)
    if total_gib is None:
        return {'Memory Free(GiB)': '0', 'Memory Used%': '0'}
    if total_gib == 0:
        return {'Memory Free(GiB)': format_decimal(free_gib), 'Memory Used%': '0'}
    return {
        'Memory Free(GiB)': format_decimal(free_gib),
        'Memory Used%': format_decimal((1 - free_gib / total_gib) * 100),
    }


def _compute_columns(facts: InstanceFacts, aligned: AlignedRow) -> Dict[str, str]:
    if facts.is_serverless:
        acu_avg = format_metric(aligned.get(SERVERLESS_CAPACITY, 'avg'))
        acu_max = format_metric(aligned.get(SERVERLESS_CAPACITY, 'max'))
        return {
            'vCPUs': '0',
            'ACUs': acu_avg,
            'CPU Avg%': acu_avg,
            'CPU Max%': acu_max,
            'Avg vCPU Used': acu_avg,
            'Peak vCPU Used': acu_max,
        }

    cpu_avg = zero_filled(aligned.get(CPU_UTILIZATION, 'avg'))
    cpu_max = zero_filled(aligned.get(CPU_UTILIZATION, 'max'))
    vcpus = facts.vcpus or 0
    return {
        'vCPUs': str(vcpus),
        'ACUs': '0',
        'CPU Avg%': format_decimal(cpu_avg),
        'CPU Max%': format_decimal(cpu_max),
        'Avg vCPU Used': format_decimal(vcpus * cpu_avg / 100),
        'Peak vCPU Used': format_decimal(vcpus * cpu_max / 100),
    }


def format_timestamp(aligned: AlignedRow, display_date_format: str) -> str:
    """Render the sample timestamp in local time"""
    return aligned.timestamp.astimezone().strftime(display_date_format)


def compute_report_row(config, facts: InstanceFacts, aligned: AlignedRow) -> Optional[Dict[str, str]]:
    """
    Build one metrics-table row for an instance at one timestamp

    Returns None when the aligned row has no timestamp.
    """
    if aligned.timestamp is None:
        return None

    instance = facts.instance
    row = {
        'Timestamp': format_timestamp(aligned, config.display_date_format),
        'AccountID': config.account_id,
        'Instance Name': instance.identifier,
        'RDS Class': instance.instance_class,
        'Engine': instance.engine,
        'Version': instance.engine_version,
        'Storage Type': instance.storage_type,
        'Multi-AZ': str(instance.multi_az),
        'Read Replica': 'Yes' if facts.is_replica else 'No',
        'RR Primary': facts.replica_primary,
        'Aurora Role': facts.cluster_role.label,
        'Memory(GiB)': format_decimal(facts.memory_gib),
        'Read IOPS Avg': format_metric(aligned.get(READ_IOPS, 'avg')),
        'Read IOPS Max': format_metric(aligned.get(READ_IOPS, 'max')),
        'Write IOPS Avg': format_metric(aligned.get(WRITE_IOPS, 'avg')),
        'Write IOPS Max': format_metric(aligned.get(WRITE_IOPS, 'max')),
        'Max Connections': format_metric(aligned.get(DATABASE_CONNECTIONS, 'max'), places=0),
        'Service Type': facts.service_type,
    }
    row.update(_compute_columns(facts, aligned))
    row.update(_storage_columns(facts, aligned))
    row.update(_memory_columns(facts, aligned))

    return {column: row[column] for column in METRICS_COLUMNS}


def inventory_row(facts: InstanceFacts) -> Dict[str, str]:
    """Build the instance inventory record"""
    instance = facts.instance
    storage = instance.allocated_storage
    return {
        'Instance Name': instance.identifier,
        'Engine': instance.engine,
        'Engine Version': instance.engine_version,
        'Instance Class': instance.instance_class,
        'Storage (GB)': str(storage) if storage is not None else '0',
        'Multi-AZ': 'Yes' if instance.multi_az else 'No',
        'Read Replica': 'Yes' if facts.is_replica else 'No',
        'Read Replica Primary': facts.replica_primary,
        'Aurora Role': facts.cluster_role.label,
    }
