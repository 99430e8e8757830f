from dataclasses import dataclass
from typing import Any

import boto3


@dataclass(frozen=True)
class AwsClients:
    """boto3 clients shared by every component of a run"""
    sts: Any
    rds: Any
    ec2: Any
    cloudwatch: Any


def get_boto3_client(service_name, region_name):
    """Get boto3 client for the report region"""
    return boto3.client(service_name, region_name=region_name)


def create_clients(region_name) -> AwsClients:
    return AwsClients(
        sts=get_boto3_client('sts', region_name),
        rds=get_boto3_client('rds', region_name),
        ec2=get_boto3_client('ec2', region_name),
        cloudwatch=get_boto3_client('cloudwatch', region_name),
    )
