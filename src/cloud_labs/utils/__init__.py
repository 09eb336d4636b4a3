"""Shared helpers for the provisioning scripts and the webhook service."""

from .logger import get_logger
from .aws_helpers import (
    get_boto3_client,
    get_boto3_resource,
    get_account_id,
    client_error_code,
    check_s3_bucket_exists,
)

__all__ = [
    "get_logger",
    "get_boto3_client",
    "get_boto3_resource",
    "get_account_id",
    "client_error_code",
    "check_s3_bucket_exists",
]
