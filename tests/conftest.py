"""Pytest configuration and fixtures."""

import json

import pytest
from botocore.exceptions import ClientError


TOPIC_ARN = 'arn:aws:sns:us-east-1:123456789012:cloud-labs-s3-events'


def make_client_error(code, message='error', operation='Operation'):
    """Build a botocore ClientError with the given error code."""
    return ClientError({'Error': {'Code': code, 'Message': message}}, operation)


@pytest.fixture
def mock_aws_credentials(monkeypatch):
    """Mock AWS credentials for testing."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def s3_event():
    """S3 ObjectCreated event as S3 publishes it to SNS."""
    return {
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "awsRegion": "us-east-1",
                "eventTime": "2024-11-14T10:30:00.000Z",
                "eventName": "ObjectCreated:Put",
                "s3": {
                    "s3SchemaVersion": "1.0",
                    "configurationId": "cloud-labs-sns-notification",
                    "bucket": {
                        "name": "cloud-labs-uploads",
                        "arn": "arn:aws:s3:::cloud-labs-uploads"
                    },
                    "object": {
                        "key": "uploads/lab+report.pdf",
                        "size": 52428800,
                        "eTag": "0123456789abcdef0123456789abcdef",
                        "sequencer": "0A1B2C3D4E5F678901"
                    }
                }
            }
        ]
    }


def sns_envelope(message_type='Notification', message='', **overrides):
    """Build an SNS HTTP delivery body."""
    envelope = {
        "Type": message_type,
        "MessageId": "22b80b92-fdea-4c2c-8f9d-bdfb0c7bf324",
        "TopicArn": TOPIC_ARN,
        "Subject": "Amazon S3 Notification",
        "Message": message,
        "Timestamp": "2024-11-14T10:30:01.000Z",
        "SignatureVersion": "1",
        "Signature": "EXAMPLE",
        "SigningCertURL": "https://sns.us-east-1.amazonaws.com/SimpleNotificationService-abc123.pem",
        "UnsubscribeURL": "https://sns.us-east-1.amazonaws.com/?Action=Unsubscribe"
    }
    if message_type == 'SubscriptionConfirmation':
        envelope["Token"] = "token-123"
        envelope["SubscribeURL"] = (
            "https://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription&Token=token-123"
        )
    envelope.update(overrides)
    return envelope


@pytest.fixture
def notification_envelope(s3_event):
    """SNS Notification wrapping the S3 event."""
    return sns_envelope('Notification', json.dumps(s3_event))


@pytest.fixture
def confirmation_envelope():
    """SNS SubscriptionConfirmation message."""
    return sns_envelope('SubscriptionConfirmation', 'You have chosen to subscribe to the topic')
