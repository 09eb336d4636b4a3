"""Unit tests for the SNS topic setup."""

import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from conftest import TOPIC_ARN, make_client_error
from cloud_labs.provisioning.sns_setup import SNSTopicSetup, PENDING


@pytest.fixture
def sns_client():
    with patch('cloud_labs.provisioning.sns_setup.get_boto3_client') as mock_get_client:
        client = MagicMock()
        mock_get_client.return_value = client
        yield client


@pytest.fixture
def topic_setup(sns_client):
    return SNSTopicSetup(account_id='123456789012')


class TestTopic:
    """Test topic creation and policy."""

    @patch('cloud_labs.provisioning.sns_setup.get_account_id', return_value='999988887777')
    def test_account_id_resolved_when_missing(self, mock_account, sns_client):
        assert SNSTopicSetup().account_id == '999988887777'

    def test_create_topic(self, topic_setup, sns_client):
        sns_client.create_topic.return_value = {'TopicArn': TOPIC_ARN}

        assert topic_setup.create_topic() == TOPIC_ARN
        assert sns_client.create_topic.call_args[1]['Name'] == 'cloud-labs-s3-events'

    def test_create_topic_failure_raises(self, topic_setup, sns_client):
        sns_client.create_topic.side_effect = make_client_error('AuthorizationError')

        with pytest.raises(ClientError):
            topic_setup.create_topic()

    def test_allow_s3_publish_policy(self, topic_setup, sns_client):
        assert topic_setup.allow_s3_publish(TOPIC_ARN, 'lab-bucket') is True

        kwargs = sns_client.set_topic_attributes.call_args[1]
        assert kwargs['AttributeName'] == 'Policy'
        statement = json.loads(kwargs['AttributeValue'])['Statement'][0]
        assert statement['Principal'] == {'Service': 's3.amazonaws.com'}
        assert statement['Action'] == 'SNS:Publish'
        assert statement['Resource'] == TOPIC_ARN
        assert statement['Condition']['ArnLike']['aws:SourceArn'] == 'arn:aws:s3:::lab-bucket'
        assert statement['Condition']['StringEquals']['aws:SourceAccount'] == '123456789012'


class TestSubscriptions:
    """Test endpoint subscriptions."""

    @pytest.mark.parametrize("url,protocol", [
        ("http://203.0.113.10:8080/sns", "http"),
        ("https://labs.example.edu/sns", "https"),
    ])
    def test_new_subscription_is_pending(self, topic_setup, sns_client, url, protocol):
        sns_client.subscribe.return_value = {'SubscriptionArn': f'{TOPIC_ARN}:1111'}
        sns_client.get_subscription_attributes.return_value = {
            'Attributes': {'PendingConfirmation': 'true', 'ConfirmationWasAuthenticated': 'false'}
        }

        subscription = topic_setup.subscribe_endpoint(TOPIC_ARN, url)

        assert subscription['protocol'] == protocol
        assert subscription['subscription_arn'] == f'{TOPIC_ARN}:1111'
        assert subscription['status'] == PENDING
        sns_client.subscribe.assert_called_once_with(
            TopicArn=TOPIC_ARN,
            Protocol=protocol,
            Endpoint=url,
            ReturnSubscriptionArn=True
        )
        sns_client.get_subscription_attributes.assert_called_once_with(
            SubscriptionArn=f'{TOPIC_ARN}:1111'
        )

    def test_confirmed_subscription(self, topic_setup, sns_client):
        sns_client.subscribe.return_value = {'SubscriptionArn': f'{TOPIC_ARN}:abcd'}
        sns_client.get_subscription_attributes.return_value = {
            'Attributes': {'PendingConfirmation': 'false'}
        }

        subscription = topic_setup.subscribe_endpoint(TOPIC_ARN, 'https://labs.example.edu/sns')

        assert subscription['status'] == 'confirmed'

    def test_status_unknown_when_attributes_unreadable(self, topic_setup, sns_client):
        sns_client.subscribe.return_value = {'SubscriptionArn': f'{TOPIC_ARN}:abcd'}
        sns_client.get_subscription_attributes.side_effect = make_client_error('NotFound')

        subscription = topic_setup.subscribe_endpoint(TOPIC_ARN, 'https://labs.example.edu/sns')

        assert subscription['status'] == PENDING

    def test_rejects_other_schemes(self, topic_setup, sns_client):
        with pytest.raises(ValueError):
            topic_setup.subscribe_endpoint(TOPIC_ARN, 'ftp://example.com/sns')
        sns_client.subscribe.assert_not_called()

    def test_list_subscriptions(self, topic_setup, sns_client):
        paginator = MagicMock()
        paginator.paginate.return_value = [{'Subscriptions': [{
            'SubscriptionArn': f'{TOPIC_ARN}:abcd',
            'Protocol': 'http',
            'Endpoint': 'http://203.0.113.10:8080/sns',
            'Owner': '123456789012'
        }]}]
        sns_client.get_paginator.return_value = paginator

        subscriptions = topic_setup.list_subscriptions(TOPIC_ARN)

        assert len(subscriptions) == 1
        assert subscriptions[0]['endpoint'] == 'http://203.0.113.10:8080/sns'

    def test_unsubscribe_pending_is_noop(self, topic_setup, sns_client):
        assert topic_setup.unsubscribe(PENDING) is True
        sns_client.unsubscribe.assert_not_called()

    def test_delete_topic(self, topic_setup, sns_client):
        assert topic_setup.delete_topic(TOPIC_ARN) is True
        sns_client.delete_topic.assert_called_once_with(TopicArn=TOPIC_ARN)
