import unittest
from unittest.mock import patch

from rds_consolidator.aligner import AlignedRow
from rds_consolidator.classifier import ClusterRole
from rds_consolidator.rows import (
    INVENTORY_COLUMNS,
    METRICS_COLUMNS,
    compute_report_row,
    format_decimal,
    inventory_row,
)
from helpers import GIB, facts, hour, instance, report_config


def aligned(**values):
    return AlignedRow(timestamp=hour(10), values=values)


class TestFormatDecimal(unittest.TestCase):
    def test_rounds_half_away_from_zero(self):
        self.assertEqual(format_decimal(0.25), '0.3')
        self.assertEqual(format_decimal(-0.25), '-0.3')
        self.assertEqual(format_decimal(2.45), '2.5')
        self.assertEqual(format_decimal(7.5, places=0), '8')
        self.assertEqual(format_decimal(2.0), '2.0')

    def test_non_numeric_becomes_zero(self):
        for value in (None, '', 'n/a', float('nan'), True):
            self.assertEqual(format_decimal(value), '0')

    def test_negative_zero(self):
        self.assertEqual(format_decimal(-0.01), '0.0')


class TestComputeReportRow(unittest.TestCase):
    def setUp(self):
        self.config = report_config()

    def test_column_order(self):
        row = compute_report_row(self.config, facts(), aligned())
        self.assertEqual(list(row), METRICS_COLUMNS)
        self.assertEqual(len(METRICS_COLUMNS), 29)

    def test_provisioned_vcpu_used(self):
        row = compute_report_row(self.config, facts(vcpus=4), aligned(**{
            'CPUUtilization.avg': 50.0,
            'CPUUtilization.max': 75.0,
        }))
        self.assertEqual(row['vCPUs'], '4')
        self.assertEqual(row['ACUs'], '0')
        self.assertEqual(row['CPU Avg%'], '50.0')
        self.assertEqual(row['CPU Max%'], '75.0')
        self.assertEqual(row['Avg vCPU Used'], '2.0')
        self.assertEqual(row['Peak vCPU Used'], '3.0')

    def test_serverless_uses_capacity(self):
        inst = instance(instance_class='db.serverless', engine='aurora-postgresql', DBClusterIdentifier='c1')
        serverless = facts(inst, is_serverless=True, vcpus=0, memory_gib=None,
                           cluster_role=ClusterRole.WRITER, cluster_volume_gb=20.0)
        row = compute_report_row(self.config, serverless, aligned(**{
            'ServerlessDatabaseCapacity.avg': 2.25,
            'ServerlessDatabaseCapacity.max': 4.0,
            'CPUUtilization.avg': 99.0,
            'FreeableMemory.avg': 2 * GIB,
        }))
        self.assertEqual(row['vCPUs'], '0')
        self.assertEqual(row['ACUs'], '2.3')
        self.assertEqual(row['CPU Avg%'], '2.3')
        self.assertEqual(row['CPU Max%'], '4.0')
        self.assertEqual(row['Avg vCPU Used'], '2.3')
        self.assertEqual(row['Peak vCPU Used'], '4.0')
        self.assertEqual(row['Memory(GiB)'], '0')
        self.assertEqual(row['Memory Free(GiB)'], '2.0')
        self.assertEqual(row['Memory Used%'], '0')
        self.assertEqual(row['Free Storage(GB)'], '0')
        self.assertEqual(row['Aurora Role'], 'Writer')

    def test_memory_used_percent(self):
        row = compute_report_row(self.config, facts(memory_gib=16.0), aligned(**{'FreeableMemory.avg': 4 * GIB}))
        self.assertEqual(row['Memory(GiB)'], '16.0')
        self.assertEqual(row['Memory Free(GiB)'], '4.0')
        self.assertEqual(row['Memory Used%'], '75.0')

    def test_memory_defaults_without_total(self):
        row = compute_report_row(self.config, facts(memory_gib=None), aligned(**{'FreeableMemory.avg': 4 * GIB}))
        self.assertEqual(row['Memory Free(GiB)'], '0')
        self.assertEqual(row['Memory Used%'], '0')

        row = compute_report_row(self.config, facts(memory_gib='n/a'), aligned(**{'FreeableMemory.avg': 4 * GIB}))
        self.assertEqual(row['Memory Free(GiB)'], '0')
        self.assertEqual(row['Memory Used%'], '0')

    def test_instance_storage(self):
        row = compute_report_row(self.config, facts(), aligned(**{'FreeStorageSpace.avg': 25.5 * GIB}))
        self.assertEqual(row['Storage(GB)'], '100')
        self.assertEqual(row['Free Storage(GB)'], '25.5')
        self.assertEqual(row['Used Storage(GB)'], '74.5')

    def test_instance_storage_without_datapoint(self):
        row = compute_report_row(self.config, facts(), aligned(**{'CPUUtilization.avg': 50.0}))
        self.assertEqual(row['Storage(GB)'], '100')
        self.assertEqual(row['Free Storage(GB)'], '0.0')
        self.assertEqual(row['Used Storage(GB)'], '100.0')

    def test_memory_without_datapoint_counts_as_fully_used(self):
        row = compute_report_row(self.config, facts(memory_gib=16.0), aligned(**{'CPUUtilization.avg': 50.0}))
        self.assertEqual(row['Memory Free(GiB)'], '0.0')
        self.assertEqual(row['Memory Used%'], '100.0')

    def test_cluster_storage(self):
        inst = instance(engine='aurora-mysql', DBClusterIdentifier='c1', AllocatedStorage=1)
        row = compute_report_row(self.config, facts(inst, cluster_volume_gb=42.04),
                                 aligned(**{'FreeStorageSpace.avg': 10 * GIB}))
        self.assertEqual(row['Storage(GB)'], '42.0')
        self.assertEqual(row['Free Storage(GB)'], '0')
        self.assertEqual(row['Used Storage(GB)'], '42.0')

        row = compute_report_row(self.config, facts(inst, cluster_volume_gb=None), aligned())
        self.assertEqual((row['Storage(GB)'], row['Free Storage(GB)'], row['Used Storage(GB)']), ('0', '0', '0'))

    def test_missing_values_zero_filled(self):
        row = compute_report_row(self.config, facts(), aligned(**{'ReadIOPS.avg': 12.34, 'ReadIOPS.max': None}))
        self.assertEqual(row['Read IOPS Avg'], '12.3')
        self.assertEqual(row['Read IOPS Max'], '0.0')
        self.assertEqual(row['Write IOPS Avg'], '0.0')
        self.assertEqual(row['CPU Avg%'], '0.0')
        self.assertEqual(row['Avg vCPU Used'], '0.0')
        self.assertEqual(row['Max Connections'], '0')

    def test_connections_rounded_to_integer(self):
        row = compute_report_row(self.config, facts(), aligned(**{'DatabaseConnections.max': 41.5}))
        self.assertEqual(row['Max Connections'], '42')

    def test_identity_columns(self):
        inst = instance(identifier='orders-db', MultiAZ=True, ReadReplicaSourceDBInstanceIdentifier='orders-primary')
        row = compute_report_row(self.config, facts(inst, is_replica=True, replica_primary='orders-primary'), aligned())
        self.assertEqual(row['AccountID'], '123456789012')
        self.assertEqual(row['Instance Name'], 'orders-db')
        self.assertEqual(row['Multi-AZ'], 'True')
        self.assertEqual(row['Read Replica'], 'Yes')
        self.assertEqual(row['RR Primary'], 'orders-primary')
        self.assertEqual(row['Aurora Role'], 'N/A')
        self.assertEqual(row['Service Type'], 'RDS')

    @patch('rds_consolidator.rows.format_timestamp', return_value='2025-06-13 10:00')
    def test_timestamp_uses_display_format(self, mock_format):
        row = compute_report_row(self.config, facts(), aligned())
        self.assertEqual(row['Timestamp'], '2025-06-13 10:00')
        mock_format.assert_called_once()
        self.assertEqual(mock_format.call_args.args[1], '%Y-%m-%d %H:%M')

    def test_row_without_timestamp(self):
        self.assertIsNone(compute_report_row(self.config, facts(), AlignedRow(timestamp=None)))


class TestInventoryRow(unittest.TestCase):
    def test_inventory_row(self):
        inst = instance(identifier='db-9', engine='aurora-postgresql', MultiAZ=True, DBClusterIdentifier='c1')
        row = inventory_row(facts(inst, cluster_role=ClusterRole.UNKNOWN))
        self.assertEqual(list(row), INVENTORY_COLUMNS)
        self.assertEqual(row['Multi-AZ'], 'Yes')
        self.assertEqual(row['Read Replica'], 'No')
        self.assertEqual(row['Read Replica Primary'], 'None')
        self.assertEqual(row['Aurora Role'], 'Reader')
        self.assertEqual(row['Storage (GB)'], '100')


if __name__ == '__main__':
    unittest.main()
