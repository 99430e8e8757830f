import os
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from .aligner import align_samples
from .classifier import Instance, InstanceClassifier, unresolved_facts
from .config import VALID_ENGINES
from .metrics import (
    CPU_UTILIZATION,
    DATABASE_CONNECTIONS,
    FREEABLE_MEMORY,
    FREE_STORAGE_SPACE,
    READ_IOPS,
    SERVERLESS_CAPACITY,
    WRITE_IOPS,
    fetch_metric,
)
from .rows import INVENTORY_COLUMNS, METRICS_COLUMNS, compute_report_row, inventory_row

logger = logging.getLogger(__name__)

# Metrics fetched for every instance, in addition to the CPU or capacity driver
SUPPORTING_METRICS = (
    FREEABLE_MEMORY,
    FREE_STORAGE_SPACE,
    DATABASE_CONNECTIONS,
    READ_IOPS,
    WRITE_IOPS,
)

_SORT_KEY = '_sort_timestamp'


@dataclass
class ReportTables:
    metrics: pd.DataFrame
    inventory: pd.DataFrame
    instances_processed: int = 0
    serverless_instances: int = 0
    cluster_instances: int = 0


def list_instances(rds, engine_filter: Optional[str] = None) -> List[Instance]:
    """
    Get all DB instances in the region, optionally restricted to one engine
    """
    if engine_filter is not None and engine_filter not in VALID_ENGINES:
        raise ValueError(f"Invalid engine type '{engine_filter}'. Valid engines are: {' '.join(VALID_ENGINES)}")

    kwargs = {}
    if engine_filter:
        kwargs['Filters'] = [{'Name': 'engine', 'Values': [engine_filter]}]

    instances = []
    paginator = rds.get_paginator('describe_db_instances')
    for page in paginator.paginate(**kwargs):
        for record in page.get('DBInstances', []):
            instance = Instance.from_api(record)
            if engine_filter and instance.engine != engine_filter:
                continue
            instances.append(instance)

    logger.info(f"Found {len(instances)} RDS instances{f' with engine {engine_filter}' if engine_filter else ''}")
    return instances


class ReportAssembler:
    """Drives classification, fetching, alignment and row computation for every instance"""

    def __init__(self, clients, config):
        self.clients = clients
        self.config = config
        self.classifier = InstanceClassifier(clients.rds, clients.ec2, clients.cloudwatch, config)

    def fetch_streams(self, instance: Instance, serverless: bool):
        driver = SERVERLESS_CAPACITY if serverless else CPU_UTILIZATION
        streams = {}
        for metric_name in (driver,) + SUPPORTING_METRICS:
            streams[metric_name] = fetch_metric(self.clients.cloudwatch, self.config, metric_name, instance.identifier)
        return driver, streams

    def process_instance(self, instance: Instance):
        """Return (facts, metric rows) for one instance"""
        facts = self.classifier.classify(instance)
        driver, streams = self.fetch_streams(instance, facts.is_serverless)

        rows = []
        for aligned in align_samples(streams, driver=driver):
            row = compute_report_row(self.config, facts, aligned)
            if row is None:
                continue
            row[_SORT_KEY] = aligned.timestamp
            rows.append(row)
        return facts, rows

    def collect(self) -> ReportTables:
        instances = list_instances(self.clients.rds, self.config.engine_filter)

        metric_rows: List[Dict] = []
        inventory_rows: List[Dict] = []
        processed = serverless = clustered = 0

        for instance in instances:
            logger.info(f"Processing {instance.identifier}...")
            try:
                facts, rows = self.process_instance(instance)
            except Exception as e:
                logger.error(f"Error collecting metrics for instance {instance.identifier}: {str(e)}")
                inventory_rows.append(inventory_row(unresolved_facts(instance)))
                continue

            processed += 1
            serverless += int(facts.is_serverless)
            clustered += int(facts.is_cluster_engine)
            metric_rows.extend(rows)
            inventory_rows.append(inventory_row(facts))
            if not rows:
                logger.warning(f"No metrics found for {instance.identifier}")

        return ReportTables(
            metrics=build_metrics_frame(metric_rows),
            inventory=build_inventory_frame(inventory_rows),
            instances_processed=processed,
            serverless_instances=serverless,
            cluster_instances=clustered,
        )


def build_metrics_frame(rows: List[Dict]) -> pd.DataFrame:
    """Metrics table sorted by instance name, then sample time"""
    df = pd.DataFrame(rows, columns=METRICS_COLUMNS + [_SORT_KEY])
    if not df.empty:
        df[_SORT_KEY] = pd.to_datetime(df[_SORT_KEY], utc=True)
        df = df.sort_values(['Instance Name', _SORT_KEY], kind='mergesort')
    return df.drop(columns=[_SORT_KEY]).reset_index(drop=True)


def build_inventory_frame(rows: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=INVENTORY_COLUMNS)
    if not df.empty:
        df = df.sort_values('Instance Name', kind='mergesort')
    return df.reset_index(drop=True)


def ensure_output_dir(output_dir: str) -> str:
    """Create the output directory, falling back to the current directory"""
    try:
        os.makedirs(output_dir, exist_ok=True)
        return output_dir
    except OSError as e:
        logger.warning(f"Failed to create output directory {output_dir}: {str(e)}. Using current directory instead")
        return '.'


def write_reports(tables: ReportTables, config) -> Dict[str, str]:
    """
    Write the metrics and inventory tables to CSV (and optionally Excel)

    Returns:
        Mapping of report kind to written file path
    """
    output_dir = ensure_output_dir(config.output_dir)
    paths = {
        'metrics': os.path.join(output_dir, f"rds_metrics_{config.run_timestamp}.csv"),
        'inventory': os.path.join(output_dir, f"rds_instances_list_{config.run_timestamp}.csv"),
    }

    tables.metrics.to_csv(paths['metrics'], index=False)
    logger.info(f"CSV file created: {paths['metrics']}")
    tables.inventory.to_csv(paths['inventory'], index=False)
    logger.info(f"RDS instances list created: {paths['inventory']}")

    if config.excel:
        paths['excel'] = os.path.join(output_dir, f"rds_report_{config.run_timestamp}.xlsx")
        with pd.ExcelWriter(paths['excel'], engine='openpyxl') as writer:
            tables.metrics.to_excel(writer, sheet_name='Metrics', index=False)
            tables.inventory.to_excel(writer, sheet_name='Instances', index=False)
        logger.info(f"Excel workbook created: {paths['excel']}")

    return paths
