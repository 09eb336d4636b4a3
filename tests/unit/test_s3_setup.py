"""Unit tests for the lab bucket setup."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from conftest import TOPIC_ARN, make_client_error
from cloud_labs.provisioning.s3_setup import BucketCreator, NOTIFICATION_ID, describe_notifications


@pytest.fixture
def s3_client():
    with patch('cloud_labs.provisioning.s3_setup.get_boto3_client') as mock_get_client:
        client = MagicMock()
        mock_get_client.return_value = client
        yield client


class TestCreateBucket:
    """Test bucket creation."""

    def test_requires_bucket_name(self, s3_client):
        with pytest.raises(ValueError):
            BucketCreator('')

    def test_us_east_1_has_no_location_constraint(self, s3_client):
        creator = BucketCreator('lab-bucket', region='us-east-1')

        assert creator.create_bucket() is True
        s3_client.create_bucket.assert_called_once_with(Bucket='lab-bucket')

    def test_other_regions_set_location_constraint(self, s3_client):
        creator = BucketCreator('lab-bucket', region='eu-west-1')

        assert creator.create_bucket() is True
        s3_client.create_bucket.assert_called_once_with(
            Bucket='lab-bucket',
            CreateBucketConfiguration={'LocationConstraint': 'eu-west-1'}
        )

    def test_already_owned_is_success(self, s3_client):
        s3_client.create_bucket.side_effect = make_client_error('BucketAlreadyOwnedByYou')

        creator = BucketCreator('lab-bucket')

        assert creator.create_bucket() is True
        assert creator.existed is True

    def test_owned_by_someone_else_fails(self, s3_client):
        s3_client.create_bucket.side_effect = make_client_error('BucketAlreadyExists')

        assert BucketCreator('lab-bucket').create_bucket() is False


class TestBucketSettings:
    """Test versioning and public access block."""

    def test_enable_versioning(self, s3_client):
        assert BucketCreator('lab-bucket').enable_versioning() is True
        s3_client.put_bucket_versioning.assert_called_once_with(
            Bucket='lab-bucket',
            VersioningConfiguration={'Status': 'Enabled'}
        )

    def test_block_public_access_sets_all_flags(self, s3_client):
        assert BucketCreator('lab-bucket').block_public_access() is True

        config = s3_client.put_public_access_block.call_args[1]['PublicAccessBlockConfiguration']
        assert all(config.values())
        assert len(config) == 4


class TestTopicNotification:
    """Test SNS notification configuration."""

    def test_merges_with_existing_configuration(self, s3_client):
        s3_client.get_bucket_notification_configuration.return_value = {
            'ResponseMetadata': {'HTTPStatusCode': 200},
            'LambdaFunctionConfigurations': [{'Id': 'existing-lambda'}],
            'TopicConfigurations': [
                {'Id': NOTIFICATION_ID, 'TopicArn': 'old-topic', 'Events': ['s3:ObjectRemoved:*']},
                {'Id': 'other-topic', 'TopicArn': 'other', 'Events': ['s3:ObjectCreated:*']}
            ]
        }

        assert BucketCreator('lab-bucket').configure_topic_notification(TOPIC_ARN) is True

        applied = s3_client.put_bucket_notification_configuration.call_args[1]['NotificationConfiguration']
        assert 'ResponseMetadata' not in applied
        assert applied['LambdaFunctionConfigurations'] == [{'Id': 'existing-lambda'}]
        ids = [cfg['Id'] for cfg in applied['TopicConfigurations']]
        assert ids == ['other-topic', NOTIFICATION_ID]
        ours = applied['TopicConfigurations'][-1]
        assert ours['TopicArn'] == TOPIC_ARN
        assert ours['Events'] == ['s3:ObjectCreated:*']
        assert 'Filter' not in ours

    def test_prefix_and_suffix_filters(self, s3_client):
        s3_client.get_bucket_notification_configuration.return_value = {}

        BucketCreator('lab-bucket').configure_topic_notification(
            TOPIC_ARN, prefix='uploads/', suffix='.pdf'
        )

        applied = s3_client.put_bucket_notification_configuration.call_args[1]['NotificationConfiguration']
        rules = applied['TopicConfigurations'][0]['Filter']['Key']['FilterRules']
        assert rules == [
            {'Name': 'prefix', 'Value': 'uploads/'},
            {'Name': 'suffix', 'Value': '.pdf'}
        ]

    def test_failure_returns_false(self, s3_client):
        s3_client.get_bucket_notification_configuration.return_value = {}
        s3_client.put_bucket_notification_configuration.side_effect = make_client_error(
            'InvalidArgument', 'Unable to validate the following destination configurations'
        )

        assert BucketCreator('lab-bucket').configure_topic_notification(TOPIC_ARN) is False

    def test_describe_notifications(self, s3_client):
        s3_client.get_bucket_notification_configuration.return_value = {
            'TopicConfigurations': [{
                'Id': NOTIFICATION_ID,
                'TopicArn': TOPIC_ARN,
                'Events': ['s3:ObjectCreated:*'],
                'Filter': {'Key': {'FilterRules': [{'Name': 'prefix', 'Value': 'uploads/'}]}}
            }]
        }

        lines = describe_notifications('lab-bucket')

        assert f"Topic ARN: {TOPIC_ARN}" in lines
        assert "Prefix: uploads/" in lines

    def test_describe_notifications_empty(self, s3_client):
        s3_client.get_bucket_notification_configuration.return_value = {}

        lines = describe_notifications('lab-bucket')

        assert lines == ["No SNS topic configurations found for bucket: lab-bucket"]

    @pytest.mark.parametrize("code", ["NoSuchBucket", "AccessDenied"])
    def test_describe_notifications_surfaces_errors(self, s3_client, code):
        s3_client.get_bucket_notification_configuration.side_effect = make_client_error(code)

        with pytest.raises(ClientError):
            describe_notifications('lab-bucket')


class TestDeleteBucket:
    """Test bucket deletion."""

    def test_force_empties_versions_first(self, s3_client):
        paginator = MagicMock()
        paginator.paginate.return_value = [{
            'Versions': [{'Key': 'a.txt', 'VersionId': 'v1'}],
            'DeleteMarkers': [{'Key': 'b.txt', 'VersionId': 'v2'}]
        }]
        s3_client.get_paginator.return_value = paginator

        assert BucketCreator('lab-bucket').delete_bucket(force=True) is True

        deleted = s3_client.delete_objects.call_args[1]['Delete']['Objects']
        assert deleted == [
            {'Key': 'a.txt', 'VersionId': 'v1'},
            {'Key': 'b.txt', 'VersionId': 'v2'}
        ]
        s3_client.delete_bucket.assert_called_once_with(Bucket='lab-bucket')

    def test_missing_bucket_is_success(self, s3_client):
        s3_client.delete_bucket.side_effect = make_client_error('NoSuchBucket')

        assert BucketCreator('lab-bucket').delete_bucket() is True
