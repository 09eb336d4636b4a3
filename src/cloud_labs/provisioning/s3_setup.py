"""
Create the lab S3 bucket and wire its object events to an SNS topic.

The bucket gets:
- Versioning enabled
- Public access blocked
- An SNS topic notification for s3:ObjectCreated:* events
"""

from typing import Dict, List, Optional, Sequence

from botocore.exceptions import ClientError

from ..utils.logger import get_logger
from ..utils.aws_helpers import get_boto3_client, client_error_code

logger = get_logger(__name__)

NOTIFICATION_ID = 'cloud-labs-sns-notification'


class BucketCreator:
    """Manages creation and configuration of the lab bucket."""

    def __init__(self, bucket_name: str, region: str = 'us-east-1'):
        """
        Initialize Bucket Creator.

        Args:
            bucket_name: Globally unique bucket name.
            region: AWS region for bucket creation.
        """
        if not bucket_name:
            raise ValueError("A bucket name is required")

        self.bucket_name = bucket_name
        self.region = region
        self.s3_client = get_boto3_client('s3', region=region)
        # Set when create_bucket finds the bucket already owned by this account
        self.existed = False
        logger.info(f"Initialized BucketCreator for bucket: {self.bucket_name}")

    @property
    def bucket_arn(self) -> str:
        return f"arn:aws:s3:::{self.bucket_name}"

    def create_bucket(self) -> bool:
        """
        Create the S3 bucket.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Creating S3 bucket: {self.bucket_name}")

            # us-east-1 rejects an explicit LocationConstraint
            if self.region == 'us-east-1':
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={'LocationConstraint': self.region}
                )

            logger.info(f"Successfully created bucket: {self.bucket_name}")
            return True

        except ClientError as e:
            error_code = client_error_code(e)
            if error_code == 'BucketAlreadyOwnedByYou':
                logger.warning(f"Bucket {self.bucket_name} already exists and is owned by you")
                self.existed = True
                return True
            elif error_code == 'BucketAlreadyExists':
                logger.error(f"Bucket {self.bucket_name} already exists but is owned by another account")
                return False
            else:
                logger.error(f"Failed to create bucket: {e}")
                return False

    def enable_versioning(self) -> bool:
        """
        Enable versioning on the S3 bucket.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Enabling versioning for bucket: {self.bucket_name}")
            self.s3_client.put_bucket_versioning(
                Bucket=self.bucket_name,
                VersioningConfiguration={'Status': 'Enabled'}
            )
            logger.info("Successfully enabled versioning")
            return True

        except ClientError as e:
            logger.error(f"Failed to enable versioning: {e}")
            return False

    def block_public_access(self) -> bool:
        """
        Block all public access to the bucket.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Blocking public access for bucket: {self.bucket_name}")
            self.s3_client.put_public_access_block(
                Bucket=self.bucket_name,
                PublicAccessBlockConfiguration={
                    'BlockPublicAcls': True,
                    'IgnorePublicAcls': True,
                    'BlockPublicPolicy': True,
                    'RestrictPublicBuckets': True
                }
            )
            logger.info("Successfully blocked public access")
            return True

        except ClientError as e:
            logger.error(f"Failed to block public access: {e}")
            return False

    def configure_topic_notification(
        self,
        topic_arn: str,
        events: Sequence[str] = ('s3:ObjectCreated:*',),
        prefix: str = '',
        suffix: str = ''
    ) -> bool:
        """
        Send bucket events to an SNS topic.

        Existing Lambda and queue configurations are preserved; a topic
        configuration with the same Id is replaced.

        Args:
            topic_arn: Destination SNS topic ARN
            events: S3 event types to publish
            prefix: Optional key prefix filter
            suffix: Optional key suffix filter

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Configuring SNS notification for bucket: {self.bucket_name}")

            existing_config = self.s3_client.get_bucket_notification_configuration(
                Bucket=self.bucket_name
            )
            existing_config.pop('ResponseMetadata', None)

            topic_configs = [
                cfg for cfg in existing_config.get('TopicConfigurations', [])
                if cfg.get('Id') != NOTIFICATION_ID
            ]

            new_config: Dict = {
                'Id': NOTIFICATION_ID,
                'TopicArn': topic_arn,
                'Events': list(events)
            }

            filter_rules = []
            if prefix:
                filter_rules.append({'Name': 'prefix', 'Value': prefix})
            if suffix:
                filter_rules.append({'Name': 'suffix', 'Value': suffix})
            if filter_rules:
                new_config['Filter'] = {'Key': {'FilterRules': filter_rules}}

            topic_configs.append(new_config)
            existing_config['TopicConfigurations'] = topic_configs

            self.s3_client.put_bucket_notification_configuration(
                Bucket=self.bucket_name,
                NotificationConfiguration=existing_config
            )

            logger.info(f"Bucket events {', '.join(events)} now publish to {topic_arn}")
            return True

        except ClientError as e:
            logger.error(f"Failed to configure bucket notification: {e}")
            return False

    def get_notification_configuration(self) -> List[Dict]:
        """
        Get the SNS topic configurations attached to the bucket.

        Returns:
            list: Topic configurations, empty if none are attached.

        Raises:
            ClientError: If the configuration cannot be read.
        """
        try:
            response = self.s3_client.get_bucket_notification_configuration(
                Bucket=self.bucket_name
            )
            return response.get('TopicConfigurations', [])

        except ClientError as e:
            logger.error(f"Failed to read notification configuration: {e}")
            raise

    def _empty_bucket(self) -> None:
        paginator = self.s3_client.get_paginator('list_object_versions')
        for page in paginator.paginate(Bucket=self.bucket_name):
            objects = [
                {'Key': item['Key'], 'VersionId': item['VersionId']}
                for item in page.get('Versions', []) + page.get('DeleteMarkers', [])
            ]
            if objects:
                logger.info(f"Deleting {len(objects)} object version(s)")
                self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={'Objects': objects, 'Quiet': True}
                )

    def delete_bucket(self, force: bool = False) -> bool:
        """
        Delete the bucket.

        Args:
            force: Remove every object version first.

        Returns:
            bool: True if deleted or already gone, False otherwise.
        """
        try:
            if force:
                self._empty_bucket()

            logger.info(f"Deleting bucket: {self.bucket_name}")
            self.s3_client.delete_bucket(Bucket=self.bucket_name)
            logger.info(f"Deleted bucket: {self.bucket_name}")
            return True

        except ClientError as e:
            if client_error_code(e) == 'NoSuchBucket':
                logger.warning(f"Bucket {self.bucket_name} does not exist")
                return True
            logger.error(f"Failed to delete bucket: {e}")
            return False


def describe_notifications(bucket_name: str, region: Optional[str] = None) -> List[str]:
    """
    Render the bucket's SNS notification configuration as printable lines.

    Args:
        bucket_name: Name of the S3 bucket
        region: AWS region

    Returns:
        Lines describing each topic configuration.

    Raises:
        ClientError: If the bucket configuration cannot be read.
    """
    creator = BucketCreator(bucket_name, region=region or 'us-east-1')
    configs = creator.get_notification_configuration()

    if not configs:
        return [f"No SNS topic configurations found for bucket: {bucket_name}"]

    lines = [f"SNS Notification Configurations for {bucket_name}:", "=" * 60]
    for cfg in configs:
        lines.append(f"Configuration ID: {cfg.get('Id')}")
        lines.append(f"Topic ARN: {cfg.get('TopicArn')}")
        lines.append(f"Events: {', '.join(cfg.get('Events', []))}")
        filter_rules = cfg.get('Filter', {}).get('Key', {}).get('FilterRules', [])
        for rule in filter_rules:
            lines.append(f"{rule['Name'].capitalize()}: {rule['Value']}")
    return lines
