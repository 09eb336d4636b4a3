"""
Set up the SNS topic that carries S3 events to the webhook receiver.

Features:
- Topic creation
- Topic policy allowing the lab bucket to publish
- HTTP/HTTPS endpoint subscriptions
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from botocore.exceptions import ClientError

from ..utils.logger import get_logger
from ..utils.aws_helpers import get_boto3_client, get_account_id, DEFAULT_TAGS

logger = get_logger(__name__)

PENDING = 'pending confirmation'


class SNSTopicSetup:
    """
    Manages the SNS topic and its subscriptions.
    """

    def __init__(
        self,
        topic_name: str = "cloud-labs-s3-events",
        region: str = 'us-east-1',
        account_id: Optional[str] = None
    ):
        """
        Initialize SNS Topic Setup.

        Args:
            topic_name: Name for the SNS topic
            region: AWS region
            account_id: AWS account ID. If None, resolved via STS.
        """
        self.topic_name = topic_name
        self.region = region
        self.sns_client = get_boto3_client('sns', region=region)
        self.account_id = account_id or get_account_id(region=region)

        logger.info(f"Initialized SNSTopicSetup for topic: {self.topic_name}")

    def create_topic(self, display_name: str = "Cloud Labs S3 Events") -> str:
        """
        Create the SNS topic. SNS returns the existing ARN when it already exists.

        Args:
            display_name: Display name for the topic

        Returns:
            SNS topic ARN
        """
        try:
            logger.info(f"Creating SNS topic: {self.topic_name}")
            response = self.sns_client.create_topic(
                Name=self.topic_name,
                Attributes={'DisplayName': display_name},
                Tags=DEFAULT_TAGS
            )
            topic_arn = response['TopicArn']
            logger.info(f"Created SNS topic: {topic_arn}")
            return topic_arn

        except ClientError as e:
            logger.error(f"Failed to create SNS topic: {e}")
            raise

    def get_s3_publish_policy(self, topic_arn: str, bucket_name: str) -> Dict[str, Any]:
        """
        Build a topic policy that lets one bucket publish to the topic.

        Args:
            topic_arn: SNS topic ARN
            bucket_name: Source bucket

        Returns:
            Policy document.
        """
        return {
            "Version": "2012-10-17",
            "Id": "CloudLabsS3PublishPolicy",
            "Statement": [
                {
                    "Sid": "AllowS3BucketPublish",
                    "Effect": "Allow",
                    "Principal": {
                        "Service": "s3.amazonaws.com"
                    },
                    "Action": "SNS:Publish",
                    "Resource": topic_arn,
                    "Condition": {
                        "ArnLike": {
                            "aws:SourceArn": f"arn:aws:s3:::{bucket_name}"
                        },
                        "StringEquals": {
                            "aws:SourceAccount": self.account_id
                        }
                    }
                }
            ]
        }

    def allow_s3_publish(self, topic_arn: str, bucket_name: str) -> bool:
        """
        Set the topic policy so S3 can deliver bucket events.

        Args:
            topic_arn: SNS topic ARN
            bucket_name: Source bucket

        Returns:
            True if successful
        """
        try:
            logger.info(f"Allowing bucket {bucket_name} to publish to topic")
            self.sns_client.set_topic_attributes(
                TopicArn=topic_arn,
                AttributeName='Policy',
                AttributeValue=json.dumps(self.get_s3_publish_policy(topic_arn, bucket_name))
            )
            logger.info("Topic policy set successfully")
            return True

        except ClientError as e:
            logger.error(f"Failed to set topic policy: {e}")
            return False

    def subscribe_endpoint(self, topic_arn: str, endpoint_url: str) -> Dict[str, Any]:
        """
        Subscribe an HTTP or HTTPS endpoint to the topic.

        Args:
            topic_arn: SNS topic ARN
            endpoint_url: Webhook URL

        Returns:
            Subscription information
        """
        protocol = urlparse(endpoint_url).scheme.lower()
        if protocol not in ('http', 'https'):
            raise ValueError("Endpoint must use the http or https protocol")

        try:
            logger.info(f"Subscribing {protocol} endpoint {endpoint_url} to topic")
            response = self.sns_client.subscribe(
                TopicArn=topic_arn,
                Protocol=protocol,
                Endpoint=endpoint_url,
                ReturnSubscriptionArn=True
            )

            subscription_arn = response.get('SubscriptionArn') or PENDING
            logger.info(f"{protocol.upper()} subscription created: {subscription_arn}")

            status = self.get_subscription_status(subscription_arn)
            if status == PENDING:
                logger.info("The endpoint will receive a subscription confirmation request")

            return {
                'protocol': protocol,
                'endpoint': endpoint_url,
                'subscription_arn': subscription_arn,
                'status': status
            }

        except ClientError as e:
            logger.error(f"Failed to subscribe endpoint: {e}")
            raise

    def get_subscription_status(self, subscription_arn: str) -> str:
        """
        Look up whether a subscription has been confirmed.

        With ReturnSubscriptionArn SNS hands back a real ARN even for
        subscriptions still awaiting confirmation, so the ARN alone says nothing.

        Args:
            subscription_arn: Subscription ARN

        Returns:
            'confirmed' or PENDING
        """
        if subscription_arn == PENDING:
            return PENDING

        try:
            response = self.sns_client.get_subscription_attributes(
                SubscriptionArn=subscription_arn
            )
        except ClientError as e:
            logger.warning(f"Could not read subscription attributes, assuming pending: {e}")
            return PENDING

        pending = response.get('Attributes', {}).get('PendingConfirmation', 'true')
        return PENDING if pending.lower() == 'true' else 'confirmed'

    def list_subscriptions(self, topic_arn: str) -> List[Dict[str, Any]]:
        """
        List all subscriptions for a topic.

        Args:
            topic_arn: SNS topic ARN

        Returns:
            List of subscription information
        """
        try:
            logger.info(f"Listing subscriptions for topic: {topic_arn}")
            paginator = self.sns_client.get_paginator('list_subscriptions_by_topic')

            subscriptions = []
            for page in paginator.paginate(TopicArn=topic_arn):
                for sub in page.get('Subscriptions', []):
                    subscriptions.append({
                        'subscription_arn': sub['SubscriptionArn'],
                        'protocol': sub['Protocol'],
                        'endpoint': sub['Endpoint'],
                        'owner': sub.get('Owner')
                    })

            logger.info(f"Found {len(subscriptions)} subscription(s)")
            return subscriptions

        except ClientError as e:
            logger.error(f"Failed to list subscriptions: {e}")
            return []

    def unsubscribe(self, subscription_arn: str) -> bool:
        """
        Delete a subscription.

        Args:
            subscription_arn: ARN of the subscription to delete

        Returns:
            True if successful
        """
        if subscription_arn == PENDING:
            logger.warning("Subscription was never confirmed, nothing to remove")
            return True

        try:
            logger.info(f"Deleting subscription: {subscription_arn}")
            self.sns_client.unsubscribe(SubscriptionArn=subscription_arn)
            logger.info("Subscription deleted successfully")
            return True

        except ClientError as e:
            logger.error(f"Failed to delete subscription: {e}")
            return False

    def delete_topic(self, topic_arn: str) -> bool:
        """
        Delete the topic and all its subscriptions.

        Args:
            topic_arn: SNS topic ARN

        Returns:
            True if successful
        """
        try:
            logger.info(f"Deleting SNS topic: {topic_arn}")
            self.sns_client.delete_topic(TopicArn=topic_arn)
            logger.info("Topic deleted successfully")
            return True

        except ClientError as e:
            logger.error(f"Failed to delete topic: {e}")
            return False
