"""AWS helper functions using Boto3."""

from typing import Any, Optional
import boto3
from botocore.exceptions import ClientError

from ..config import config
from .logger import get_logger

logger = get_logger(__name__)

# Tags applied to everything the provisioning scripts create
DEFAULT_TAGS = [
    {'Key': 'Project', 'Value': 'cloud-labs'},
    {'Key': 'ManagedBy', 'Value': 'Automation'},
]


def get_boto3_client(service_name: str, region: Optional[str] = None) -> Any:
    """
    Get a Boto3 client for the specified AWS service.

    Args:
        service_name: AWS service name (e.g., 's3', 'iam', 'ec2')
        region: AWS region. If None, uses config default.

    Returns:
        Boto3 client instance.
    """
    region = region or config.aws.region
    logger.debug(f"Creating Boto3 client for {service_name} in {region}")
    return boto3.client(service_name, region_name=region)


def get_boto3_resource(service_name: str, region: Optional[str] = None) -> Any:
    """
    Get a Boto3 resource for the specified AWS service.

    Args:
        service_name: AWS service name (e.g., 's3', 'ec2')
        region: AWS region. If None, uses config default.

    Returns:
        Boto3 resource instance.
    """
    region = region or config.aws.region
    logger.debug(f"Creating Boto3 resource for {service_name} in {region}")
    return boto3.resource(service_name, region_name=region)


def get_account_id(region: Optional[str] = None) -> str:
    """
    Resolve the AWS account ID, preferring the configured value.

    Args:
        region: AWS region for the STS client.

    Returns:
        Twelve digit account ID.
    """
    if config.aws.account_id:
        return config.aws.account_id
    sts_client = get_boto3_client('sts', region=region)
    return sts_client.get_caller_identity()['Account']


def client_error_code(error: ClientError) -> str:
    """Extract the AWS error code from a ClientError."""
    return error.response.get('Error', {}).get('Code', '')


def check_s3_bucket_exists(bucket: str) -> bool:
    """
    Check if an S3 bucket exists and is accessible.

    Args:
        bucket: S3 bucket name

    Returns:
        True if bucket exists and is accessible, False otherwise.
    """
    try:
        s3_client = get_boto3_client('s3')
        s3_client.head_bucket(Bucket=bucket)
        logger.info(f"Bucket {bucket} exists and is accessible")
        return True
    except ClientError as e:
        if client_error_code(e) in ('404', 'NoSuchBucket'):
            logger.warning(f"Bucket {bucket} does not exist")
        else:
            logger.error(f"Error checking bucket {bucket}: {e}")
        return False
