"""SNS push-notification receiver for S3 bucket events."""

from .app import create_app, run_server, EventStore
from .envelope import (
    SNSMessage,
    S3EventRecord,
    parse_sns_message,
    parse_s3_event,
    is_valid_signing_cert_url,
    is_valid_subscribe_url,
)

__all__ = [
    "create_app",
    "run_server",
    "EventStore",
    "SNSMessage",
    "S3EventRecord",
    "parse_sns_message",
    "parse_s3_event",
    "is_valid_signing_cert_url",
    "is_valid_subscribe_url",
]
