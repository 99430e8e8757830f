import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .config import CLUSTER_ENGINES, SERVERLESS_INSTANCE_CLASS
from .metrics import CLUSTER_DIMENSION, VOLUME_BYTES_USED, fetch_metric, latest_average

logger = logging.getLogger(__name__)

BYTES_PER_GIB = 1024 * 1024 * 1024


class ClusterRole(Enum):
    WRITER = 'writer'
    READER = 'reader'
    UNKNOWN = 'unknown'
    NOT_APPLICABLE = 'not_applicable'

    @property
    def label(self) -> str:
        """Report label; an unknown role is reported as a reader"""
        if self is ClusterRole.WRITER:
            return 'Writer'
        if self is ClusterRole.NOT_APPLICABLE:
            return 'N/A'
        return 'Reader'


@dataclass(frozen=True)
class Instance:
    identifier: str
    instance_class: str
    engine: str
    engine_version: str
    allocated_storage: Optional[float] = None
    storage_type: str = ''
    multi_az: bool = False
    replica_source: Optional[str] = None
    cluster_id: Optional[str] = None

    @classmethod
    def from_api(cls, record: dict) -> 'Instance':
        """Build an Instance from one DescribeDBInstances record"""
        return cls(
            identifier=record['DBInstanceIdentifier'],
            instance_class=record.get('DBInstanceClass', ''),
            engine=record.get('Engine', ''),
            engine_version=record.get('EngineVersion', ''),
            allocated_storage=record.get('AllocatedStorage'),
            storage_type=record.get('StorageType', ''),
            multi_az=bool(record.get('MultiAZ', False)),
            replica_source=record.get('ReadReplicaSourceDBInstanceIdentifier'),
            cluster_id=record.get('DBClusterIdentifier'),
        )


@dataclass(frozen=True)
class InstanceFacts:
    instance: Instance
    is_serverless: bool
    vcpus: int
    memory_gib: Optional[float]
    cluster_role: ClusterRole
    is_replica: bool
    replica_primary: str
    cluster_volume_gb: Optional[float]
    service_type: str

    @property
    def is_cluster_engine(self) -> bool:
        return self.instance.engine in CLUSTER_ENGINES


def is_serverless(instance_class: str) -> bool:
    return instance_class == SERVERLESS_INSTANCE_CLASS


def ec2_instance_type(instance_class: str) -> str:
    """Map an RDS instance class to the EC2 instance type it runs on"""
    return instance_class.replace('db.', '')


def replica_info(replica_source: Optional[str]) -> Tuple[bool, str]:
    """Return (is_replica, primary label) for a replica source identifier"""
    if not replica_source or replica_source == 'None':
        return False, 'None'
    return True, replica_source


def service_type(engine: str) -> str:
    if engine == 'docdb':
        return 'DocumentDB'
    return 'RDS'


def unresolved_facts(instance: Instance) -> InstanceFacts:
    """Facts derivable from the listing record alone, used when classification fails"""
    is_replica, replica_primary = replica_info(instance.replica_source)
    cluster_engine = instance.engine in CLUSTER_ENGINES
    return InstanceFacts(
        instance=instance,
        is_serverless=is_serverless(instance.instance_class),
        vcpus=0,
        memory_gib=None,
        cluster_role=ClusterRole.UNKNOWN if cluster_engine else ClusterRole.NOT_APPLICABLE,
        is_replica=is_replica,
        replica_primary=replica_primary,
        cluster_volume_gb=None,
        service_type=service_type(instance.engine),
    )


class InstanceClassifier:
    """Resolves hardware, role, replica and storage facts for DB instances"""

    def __init__(self, rds, ec2, cloudwatch, config):
        self.rds = rds
        self.ec2 = ec2
        self.cloudwatch = cloudwatch
        self.config = config
        self._hardware_cache: Dict[str, Tuple[int, Optional[float]]] = {}

    def get_hardware_specs(self, instance_class: str) -> Tuple[int, Optional[float]]:
        """
        Get vCPU count and memory (GiB) for a provisioned instance class

        Unknown instance types resolve to (0, None) rather than failing.
        """
        if is_serverless(instance_class):
            return 0, None
        if instance_class in self._hardware_cache:
            return self._hardware_cache[instance_class]

        instance_type = ec2_instance_type(instance_class)
        specs = (0, None)
        try:
            response = self.ec2.describe_instance_types(InstanceTypes=[instance_type])
            instance_types = response.get('InstanceTypes', [])
            if instance_types:
                info = instance_types[0]
                vcpus = info.get('VCpuInfo', {}).get('DefaultVCpus', 0)
                memory_mib = info.get('MemoryInfo', {}).get('SizeInMiB')
                memory_gib = round(memory_mib / 1024, 1) if memory_mib else None
                specs = (int(vcpus or 0), memory_gib)
            else:
                logger.warning(f"No hardware details found for instance type {instance_type}")
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Error looking up instance type {instance_type}: {str(e)}")

        self._hardware_cache[instance_class] = specs
        return specs

    def get_cluster_role(self, instance: Instance) -> ClusterRole:
        """Writer/reader role within the cluster, for cluster engines only"""
        if instance.engine not in CLUSTER_ENGINES:
            return ClusterRole.NOT_APPLICABLE
        if not instance.cluster_id:
            logger.warning(f"Instance {instance.identifier} has no cluster identifier")
            return ClusterRole.UNKNOWN

        try:
            response = self.rds.describe_db_clusters(DBClusterIdentifier=instance.cluster_id)
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Error getting cluster details for {instance.identifier}: {str(e)}")
            return ClusterRole.UNKNOWN

        for cluster in response.get('DBClusters', []):
            for member in cluster.get('DBClusterMembers', []):
                if member.get('DBInstanceIdentifier') != instance.identifier:
                    continue
                writer_flag = member.get('IsClusterWriter')
                if writer_flag is True:
                    return ClusterRole.WRITER
                if writer_flag is False:
                    return ClusterRole.READER
                return ClusterRole.UNKNOWN
        return ClusterRole.UNKNOWN

    def get_cluster_volume_gb(self, instance: Instance) -> Optional[float]:
        """Latest cluster volume size in GB, for cluster engines only"""
        if instance.engine not in CLUSTER_ENGINES or not instance.cluster_id:
            return None
        samples = fetch_metric(self.cloudwatch, self.config, VOLUME_BYTES_USED, instance.cluster_id,
                               dimension=CLUSTER_DIMENSION, statistics=('Average',))
        volume_bytes = latest_average(samples)
        if volume_bytes is None:
            return None
        return volume_bytes / BYTES_PER_GIB

    def classify(self, instance: Instance) -> InstanceFacts:
        serverless = is_serverless(instance.instance_class)
        vcpus, memory_gib = self.get_hardware_specs(instance.instance_class)
        is_replica, replica_primary = replica_info(instance.replica_source)

        facts = InstanceFacts(
            instance=instance,
            is_serverless=serverless,
            vcpus=0 if serverless else vcpus,
            memory_gib=None if serverless else memory_gib,
            cluster_role=self.get_cluster_role(instance),
            is_replica=is_replica,
            replica_primary=replica_primary,
            cluster_volume_gb=self.get_cluster_volume_gb(instance),
            service_type=service_type(instance.engine),
        )
        logger.debug(f"Classified {instance.identifier}: serverless={facts.is_serverless}, vcpus={facts.vcpus}, "
                     f"memory_gib={facts.memory_gib}, role={facts.cluster_role.value}, replica={facts.is_replica}")
        return facts
