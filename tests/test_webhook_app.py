"""
Unit tests for the SNS webhook receiver.

Tests verify:
1. Subscription confirmation handling
2. Parsing and structured logging of S3 notifications
3. Rejection of malformed or unexpected messages
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import TOPIC_ARN, sns_envelope
from cloud_labs.config import WebhookConfig
from cloud_labs.webhook.app import EventStore, create_app
from cloud_labs.webhook.envelope import S3EventRecord


@pytest.fixture
def settings():
    return WebhookConfig(
        host='127.0.0.1',
        port=8080,
        allowed_topic_arns=[],
        auto_confirm=True,
        max_events=10
    )


@pytest.fixture
def http_session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(settings, http_session):
    app = create_app(settings, http_session=http_session)
    app.testing = True
    return app.test_client()


def post_sns(client, envelope, message_type=None):
    headers = {'Content-Type': 'text/plain; charset=UTF-8'}
    if message_type is not False:
        headers['x-amz-sns-message-type'] = message_type or envelope['Type']
    return client.post('/sns', data=json.dumps(envelope), headers=headers)


class TestSubscriptionConfirmation:
    """Tests for SubscriptionConfirmation messages."""

    def test_confirms_by_visiting_subscribe_url(self, client, http_session, confirmation_envelope):
        response = post_sns(client, confirmation_envelope)

        assert response.status_code == 200
        assert response.get_json()['status'] == 'confirmed'
        http_session.get.assert_called_once_with(confirmation_envelope['SubscribeURL'], timeout=10)

    def test_confirmation_failure(self, client, http_session, confirmation_envelope):
        http_session.get.side_effect = requests.ConnectionError('connection refused')

        response = post_sns(client, confirmation_envelope)

        assert response.status_code == 502
        assert 'connection refused' in response.get_json()['error']

    def test_auto_confirm_disabled(self, settings, http_session, confirmation_envelope):
        settings.auto_confirm = False
        client = create_app(settings, http_session=http_session).test_client()

        response = post_sns(client, confirmation_envelope)

        assert response.status_code == 202
        assert response.get_json()['subscribe_url'] == confirmation_envelope['SubscribeURL']
        http_session.get.assert_not_called()

    @pytest.mark.parametrize("subscribe_url", [
        'http://169.254.169.254/latest/meta-data/iam/security-credentials/',
        'http://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription&Token=token-123',
        'https://internal.example.com/?Action=ConfirmSubscription',
    ])
    def test_refuses_non_sns_subscribe_url(self, client, http_session, confirmation_envelope, subscribe_url):
        del confirmation_envelope['SigningCertURL']
        confirmation_envelope['SubscribeURL'] = subscribe_url

        response = post_sns(client, confirmation_envelope)

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid SubscribeURL'
        http_session.get.assert_not_called()

    def test_refuses_non_sns_subscribe_url_without_auto_confirm(self, settings, http_session,
                                                                confirmation_envelope):
        settings.auto_confirm = False
        client = create_app(settings, http_session=http_session).test_client()
        confirmation_envelope['SubscribeURL'] = 'http://169.254.169.254/latest/meta-data/'

        response = post_sns(client, confirmation_envelope)

        assert response.status_code == 400
        http_session.get.assert_not_called()

    def test_confirms_china_region_subscribe_url(self, client, http_session, confirmation_envelope):
        del confirmation_envelope['SigningCertURL']
        confirmation_envelope['SubscribeURL'] = (
            'https://sns.cn-north-1.amazonaws.com.cn/?Action=ConfirmSubscription&Token=token-123'
        )

        response = post_sns(client, confirmation_envelope)

        assert response.status_code == 200
        http_session.get.assert_called_once_with(confirmation_envelope['SubscribeURL'], timeout=10)


class TestNotifications:
    """Tests for S3 event notifications."""

    @patch('cloud_labs.webhook.app.logger')
    def test_single_file_notification(self, mock_logger, client, notification_envelope):
        response = post_sns(client, notification_envelope)

        assert response.status_code == 200
        body = response.get_json()
        assert body['message'] == 'S3 notifications processed successfully'
        assert body['files_processed'] == 1
        assert body['files'][0] == {
            'bucket': 'cloud-labs-uploads',
            'key': 'uploads/lab report.pdf',
            'size_bytes': 52428800
        }

    @patch('cloud_labs.webhook.app.logger')
    def test_structured_log_format(self, mock_logger, client, notification_envelope):
        post_sns(client, notification_envelope)

        notification_log = None
        for call in mock_logger.info.call_args_list:
            log_message = call[0][0]
            if 'S3 File Notification:' in log_message:
                notification_log = json.loads(log_message[log_message.index('{'):])
                break

        assert notification_log is not None, "Structured notification log not found"
        assert notification_log['event'] == 'S3_FILE_UPLOADED'
        assert notification_log['bucket'] == 'cloud-labs-uploads'
        assert notification_log['size_mb'] == 50.0
        assert notification_log['event_type'] == 'ObjectCreated:Put'
        assert notification_log['topic_arn'] == TOPIC_ARN

    def test_multiple_records(self, client, s3_event):
        second = json.loads(json.dumps(s3_event['Records'][0]))
        second['s3']['object']['key'] = 'uploads/second.pdf'
        s3_event['Records'].append(second)

        response = post_sns(client, sns_envelope('Notification', json.dumps(s3_event)))

        body = response.get_json()
        assert body['files_processed'] == 2
        assert [f['key'] for f in body['files']] == ['uploads/lab report.pdf', 'uploads/second.pdf']

    def test_s3_test_event(self, client):
        message = json.dumps({"Service": "Amazon S3", "Event": "s3:TestEvent"})

        response = post_sns(client, sns_envelope('Notification', message))

        assert response.status_code == 200
        assert response.get_json()['files_processed'] == 0

    @patch('cloud_labs.webhook.app.logger')
    def test_malformed_inner_message(self, mock_logger, client):
        response = post_sns(client, sns_envelope('Notification', 'not json'))

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Error processing S3 notifications'
        assert mock_logger.error.call_args[1].get('exc_info') is True

    def test_header_is_optional(self, client, notification_envelope):
        response = post_sns(client, notification_envelope, message_type=False)

        assert response.status_code == 200

    def test_unsubscribe_confirmation(self, client):
        response = post_sns(client, sns_envelope('UnsubscribeConfirmation', 'unsubscribed'))

        assert response.status_code == 200
        assert response.get_json()['status'] == 'unsubscribed'


class TestRejections:
    """Tests for requests the receiver refuses."""

    def test_invalid_json(self, client):
        response = client.post('/sns', data='not json')

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid SNS message'

    def test_header_type_mismatch(self, client, notification_envelope):
        response = post_sns(client, notification_envelope, message_type='SubscriptionConfirmation')

        assert response.status_code == 400

    def test_topic_not_allowed(self, settings, http_session, notification_envelope):
        settings.allowed_topic_arns = ['arn:aws:sns:us-east-1:123456789012:other-topic']
        client = create_app(settings, http_session=http_session).test_client()

        response = post_sns(client, notification_envelope)

        assert response.status_code == 403

    def test_topic_allowed(self, settings, http_session, notification_envelope):
        settings.allowed_topic_arns = [TOPIC_ARN]
        client = create_app(settings, http_session=http_session).test_client()

        assert post_sns(client, notification_envelope).status_code == 200

    def test_foreign_signing_certificate(self, client, notification_envelope):
        notification_envelope['SigningCertURL'] = 'https://attacker.example.com/cert.pem'

        response = post_sns(client, notification_envelope)

        assert response.status_code == 400

    @pytest.mark.parametrize("overrides", [
        {'Message': {'Records': []}},
        {'MessageId': 123},
    ])
    def test_wrong_envelope_field_types(self, client, notification_envelope, overrides):
        notification_envelope.update(overrides)

        response = post_sns(client, notification_envelope)

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid SNS message'

    @pytest.mark.parametrize("path,value", [
        (('s3', 'object', 'size'), 'big'),
        (('s3', 'bucket'), 'cloud-labs-uploads'),
        (('s3',), ['not', 'an', 'object']),
    ])
    @patch('cloud_labs.webhook.app.logger')
    def test_malformed_record(self, mock_logger, client, s3_event, path, value):
        target = s3_event['Records'][0]
        for key in path[:-1]:
            target = target[key]
        target[path[-1]] = value

        response = post_sns(client, sns_envelope('Notification', json.dumps(s3_event)))

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Error processing S3 notifications'
        assert len(client.application.extensions['event_store']) == 0

    def test_get_not_allowed(self, client):
        assert client.get('/sns').status_code == 405


class TestHealthAndEvents:
    """Tests for the read-only endpoints."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'healthy'
        assert body['events_received'] == 0
        assert 'timestamp' in body

    def test_events_newest_first(self, client, s3_event):
        for key in ('first.pdf', 'second.pdf'):
            s3_event['Records'][0]['s3']['object']['key'] = key
            post_sns(client, sns_envelope('Notification', json.dumps(s3_event)))

        body = client.get('/events').get_json()

        assert body['count'] == 2
        assert [e['key'] for e in body['events']] == ['second.pdf', 'first.pdf']
        assert body['events'][0]['size_mb'] == 50.0

        limited = client.get('/events?limit=1').get_json()
        assert [e['key'] for e in limited['events']] == ['second.pdf']

    def test_events_negative_limit(self, client):
        assert client.get('/events?limit=-1').status_code == 400


class TestEventStore:
    """Tests for the bounded event history."""

    def _record(self, key):
        return S3EventRecord(event_time='2024-11-14T10:30:00.000Z', bucket='b', key=key)

    def test_keeps_only_max_events(self):
        store = EventStore(max_events=2)
        store.add([self._record('a'), self._record('b')])
        store.add([self._record('c')])

        assert len(store) == 2
        assert [r.key for r in store.recent()] == ['c', 'b']
        assert store.notifications_received == 2
