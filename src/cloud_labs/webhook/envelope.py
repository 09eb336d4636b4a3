"""
Parsing of SNS HTTP(S) deliveries and the S3 event notifications inside them.

An S3 event reaches the webhook wrapped twice: the HTTP body is an SNS
envelope whose ``Message`` field is itself a JSON string holding the S3
``Records`` list.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from urllib.parse import unquote_plus, urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import EnvelopeError

SUBSCRIPTION_CONFIRMATION = "SubscriptionConfirmation"
NOTIFICATION = "Notification"
UNSUBSCRIBE_CONFIRMATION = "UnsubscribeConfirmation"
MESSAGE_TYPES = (SUBSCRIPTION_CONFIRMATION, NOTIFICATION, UNSUBSCRIBE_CONFIRMATION)

S3_TEST_EVENT = "s3:TestEvent"

_SIGNING_HOST = re.compile(r"^sns\.[a-z0-9-]+\.amazonaws\.com(\.cn)?$")


class SNSMessage(BaseModel):
    """An SNS HTTP(S) delivery body."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(alias="Type")
    message_id: str = Field(alias="MessageId")
    topic_arn: str = Field(alias="TopicArn")
    message: str = Field(default="", alias="Message")
    subject: Optional[str] = Field(default=None, alias="Subject")
    timestamp: Optional[str] = Field(default=None, alias="Timestamp")
    token: Optional[str] = Field(default=None, alias="Token")
    subscribe_url: Optional[str] = Field(default=None, alias="SubscribeURL")
    unsubscribe_url: Optional[str] = Field(default=None, alias="UnsubscribeURL")
    signature_version: Optional[str] = Field(default=None, alias="SignatureVersion")
    signature: Optional[str] = Field(default=None, alias="Signature")
    signing_cert_url: Optional[str] = Field(default=None, alias="SigningCertURL")


class S3EventRecord(BaseModel):
    """One S3 object event."""

    event_name: str = "Unknown"
    event_time: str
    region: Optional[str] = None
    bucket: str = "Unknown"
    key: str = "Unknown"
    size_bytes: int = 0
    etag: Optional[str] = None
    sequencer: Optional[str] = None

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)

    @property
    def s3_uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def summary(self) -> Dict[str, Any]:
        return {"bucket": self.bucket, "key": self.key, "size_bytes": self.size_bytes}


def _load_json_object(payload: Union[str, bytes, Dict[str, Any]], what: str) -> Dict[str, Any]:
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise EnvelopeError(f"{what} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise EnvelopeError(f"{what} must be a JSON object")
    return data


def parse_sns_message(body: Union[str, bytes, Dict[str, Any]]) -> SNSMessage:
    """
    Parse the body of an SNS HTTP(S) delivery.

    Args:
        body: Raw request body or an already decoded dict

    Returns:
        SNSMessage

    Raises:
        EnvelopeError: If the body is not a recognisable SNS message.
    """
    data = _load_json_object(body, "SNS message")

    missing = [key for key in ("Type", "MessageId", "TopicArn") if not data.get(key)]
    if missing:
        raise EnvelopeError(f"SNS message is missing {', '.join(missing)}")

    if data["Type"] not in MESSAGE_TYPES:
        raise EnvelopeError(f"Unsupported SNS message type: {data['Type']}")

    if data["Type"] == SUBSCRIPTION_CONFIRMATION and not data.get("SubscribeURL"):
        raise EnvelopeError("SubscriptionConfirmation has no SubscribeURL")

    try:
        return SNSMessage.model_validate(data)
    except ValidationError as e:
        raise EnvelopeError(f"SNS message has invalid fields: {e}") from e


def _parse_record(record: Dict[str, Any]) -> S3EventRecord:
    if not isinstance(record, dict) or "s3" not in record:
        raise EnvelopeError("S3 event record has no 's3' section")

    s3_info = _section(record, "s3")
    object_info = _section(s3_info, "object")
    bucket_info = _section(s3_info, "bucket")

    try:
        return S3EventRecord(
            event_name=record.get("eventName", "Unknown"),
            event_time=record.get("eventTime", datetime.now(timezone.utc).isoformat()),
            region=record.get("awsRegion"),
            bucket=bucket_info.get("name", "Unknown"),
            # Keys arrive URL encoded, with spaces as '+'
            key=unquote_plus(object_info.get("key", "Unknown")),
            size_bytes=int(object_info.get("size", 0) or 0),
            etag=object_info.get("eTag"),
            sequencer=object_info.get("sequencer"),
        )
    except (AttributeError, TypeError, ValueError) as e:
        # pydantic's ValidationError is a ValueError
        raise EnvelopeError(f"Malformed S3 event record: {e}") from e


def _section(parent: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = parent.get(name) or {}
    if not isinstance(value, dict):
        raise EnvelopeError(f"S3 event record field '{name}' must be an object")
    return value


def parse_s3_event(message: Union[str, Dict[str, Any]]) -> List[S3EventRecord]:
    """
    Parse the S3 event carried in an SNS ``Message``.

    Args:
        message: The ``Message`` string (or decoded dict)

    Returns:
        List of records; empty for the S3 test event.

    Raises:
        EnvelopeError: If the message is not an S3 event notification.
    """
    data = _load_json_object(message, "S3 event")

    # Sent once when the bucket notification is first configured
    if data.get("Event") == S3_TEST_EVENT:
        return []

    records = data.get("Records")
    if not isinstance(records, list):
        raise EnvelopeError("S3 event has no Records list")

    return [_parse_record(record) for record in records]


def is_valid_signing_cert_url(url: Optional[str]) -> bool:
    """
    Check that a SigningCertURL points at an SNS-owned certificate.

    Args:
        url: SigningCertURL from the message

    Returns:
        True if the URL is https, hosted by sns.<region>.amazonaws.com and a .pem file.
    """
    if not url:
        return False
    parsed = urlparse(url)
    return _is_sns_https(url) and parsed.path.endswith(".pem")


def is_valid_subscribe_url(url: Optional[str]) -> bool:
    """
    Check that a SubscribeURL points at the SNS API before it is fetched.

    Args:
        url: SubscribeURL from a SubscriptionConfirmation

    Returns:
        True if the URL is https and hosted by sns.<region>.amazonaws.com.
    """
    return bool(url) and _is_sns_https(url)


def _is_sns_https(url: str) -> bool:
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return False
    return (
        parsed.scheme == "https"
        and port in (None, 443)
        and not parsed.username
        and bool(_SIGNING_HOST.match(parsed.hostname or ""))
    )
