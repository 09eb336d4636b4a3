"""
Create the IAM role and instance profile used by the lab EC2 instance.

The role includes:
- Trust policy for ec2.amazonaws.com
- An AWS managed policy (S3 read-only by default)
- An inline policy scoped to the lab bucket
"""

import json
from typing import Dict, Optional

from botocore.exceptions import ClientError

from ..utils.logger import get_logger
from ..utils.aws_helpers import get_boto3_client, client_error_code, DEFAULT_TAGS

logger = get_logger(__name__)


class IAMRoleSetup:
    """Manages the lab EC2 role and its instance profile."""

    def __init__(
        self,
        role_name: str = "cloud-labs-ec2-role",
        instance_profile_name: str = "cloud-labs-ec2-profile",
        region: str = 'us-east-1'
    ):
        """
        Initialize IAM Role Setup.

        Args:
            role_name: Name for the IAM role.
            instance_profile_name: Name for the instance profile wrapping the role.
            region: AWS region.
        """
        self.role_name = role_name
        self.instance_profile_name = instance_profile_name
        self.region = region
        self.iam_client = get_boto3_client('iam', region=region)
        self.role_existed = False
        self.profile_existed = False

        logger.info(f"Initialized IAMRoleSetup for role: {self.role_name}")

    def get_trust_policy(self) -> Dict:
        """
        Get trust policy letting EC2 assume the role.

        Returns:
            dict: Trust policy document.
        """
        return {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {
                        "Service": "ec2.amazonaws.com"
                    },
                    "Action": "sts:AssumeRole"
                }
            ]
        }

    def get_s3_access_policy(self, bucket_name: str) -> Dict:
        """
        Get an S3 policy scoped to a single bucket.

        Args:
            bucket_name: Bucket the instance may read and write.

        Returns:
            dict: S3 access policy document.
        """
        return {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Action": ["s3:ListBucket"],
                    "Resource": [f"arn:aws:s3:::{bucket_name}"]
                },
                {
                    "Effect": "Allow",
                    "Action": [
                        "s3:GetObject",
                        "s3:PutObject",
                        "s3:DeleteObject"
                    ],
                    "Resource": [f"arn:aws:s3:::{bucket_name}/*"]
                }
            ]
        }

    def create_role(self) -> Optional[str]:
        """
        Create IAM role with trust policy.

        Returns:
            str: Role ARN if created or already present, None otherwise.
        """
        try:
            logger.info(f"Creating IAM role: {self.role_name}")

            response = self.iam_client.create_role(
                RoleName=self.role_name,
                AssumeRolePolicyDocument=json.dumps(self.get_trust_policy()),
                Description="Role assumed by the cloud labs EC2 instance",
                Tags=DEFAULT_TAGS
            )

            role_arn = response['Role']['Arn']
            logger.info(f"Successfully created role: {role_arn}")
            return role_arn

        except ClientError as e:
            if client_error_code(e) == 'EntityAlreadyExists':
                logger.warning(f"Role {self.role_name} already exists")
                self.role_existed = True
                return self.iam_client.get_role(RoleName=self.role_name)['Role']['Arn']
            logger.error(f"Failed to create role: {e}")
            return None

    def attach_policy(self, policy_arn: str = "arn:aws:iam::aws:policy/AmazonS3ReadOnlyAccess") -> bool:
        """
        Attach a managed policy to the role.

        Args:
            policy_arn: ARN of the managed policy.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Attaching managed policy {policy_arn}")
            self.iam_client.attach_role_policy(
                RoleName=self.role_name,
                PolicyArn=policy_arn
            )
            logger.info("Successfully attached managed policy")
            return True

        except ClientError as e:
            logger.error(f"Failed to attach managed policy: {e}")
            return False

    def put_inline_policy(self, policy_name: str, document: Dict) -> bool:
        """
        Create or replace an inline policy on the role.

        Args:
            policy_name: Inline policy name.
            document: Policy document.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Putting inline policy: {policy_name}")
            self.iam_client.put_role_policy(
                RoleName=self.role_name,
                PolicyName=policy_name,
                PolicyDocument=json.dumps(document)
            )
            logger.info(f"Successfully put inline policy: {policy_name}")
            return True

        except ClientError as e:
            logger.error(f"Failed to put inline policy: {e}")
            return False

    def create_instance_profile(self) -> Optional[str]:
        """
        Create the instance profile.

        Returns:
            str: Instance profile ARN, None on failure.
        """
        try:
            logger.info(f"Creating instance profile: {self.instance_profile_name}")
            response = self.iam_client.create_instance_profile(
                InstanceProfileName=self.instance_profile_name,
                Tags=DEFAULT_TAGS
            )
            profile_arn = response['InstanceProfile']['Arn']
            logger.info(f"Successfully created instance profile: {profile_arn}")
            return profile_arn

        except ClientError as e:
            if client_error_code(e) == 'EntityAlreadyExists':
                logger.warning(f"Instance profile {self.instance_profile_name} already exists")
                self.profile_existed = True
                response = self.iam_client.get_instance_profile(
                    InstanceProfileName=self.instance_profile_name
                )
                return response['InstanceProfile']['Arn']
            logger.error(f"Failed to create instance profile: {e}")
            return None

    def add_role_to_instance_profile(self) -> bool:
        """
        Put the role inside the instance profile.

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Adding role {self.role_name} to {self.instance_profile_name}")
            self.iam_client.add_role_to_instance_profile(
                InstanceProfileName=self.instance_profile_name,
                RoleName=self.role_name
            )
            logger.info("Successfully added role to instance profile")
            return True

        except ClientError as e:
            # A profile holds at most one role
            if client_error_code(e) == 'LimitExceeded':
                logger.warning("Instance profile already contains a role")
                return True
            logger.error(f"Failed to add role to instance profile: {e}")
            return False

    def get_role_info(self) -> Optional[Dict]:
        """
        Get information about the role.

        Returns:
            dict: Role information, None if role doesn't exist.
        """
        try:
            role = self.iam_client.get_role(RoleName=self.role_name)['Role']

            policies_response = self.iam_client.list_attached_role_policies(
                RoleName=self.role_name
            )
            attached_policies = [p['PolicyName'] for p in policies_response['AttachedPolicies']]

            inline_response = self.iam_client.list_role_policies(RoleName=self.role_name)

            return {
                'role_name': role['RoleName'],
                'role_arn': role['Arn'],
                'created_date': role['CreateDate'].isoformat(),
                'attached_policies': attached_policies,
                'inline_policies': inline_response['PolicyNames']
            }

        except ClientError as e:
            if client_error_code(e) == 'NoSuchEntity':
                logger.warning(f"Role {self.role_name} does not exist")
            else:
                logger.error(f"Failed to get role info: {e}")
            return None

    def _ignore_missing(self, action: str, func, **kwargs) -> bool:
        try:
            func(**kwargs)
            return True
        except ClientError as e:
            if client_error_code(e) == 'NoSuchEntity':
                logger.warning(f"{action}: already gone")
                return True
            logger.error(f"{action} failed: {e}")
            return False

    def delete_instance_profile(self) -> bool:
        """
        Take the role out of the instance profile and delete the profile.

        Returns:
            bool: True if both steps succeeded or the profile is already gone.
        """
        logger.info(f"Deleting instance profile {self.instance_profile_name}")
        ok = self._ignore_missing(
            "Remove role from instance profile",
            self.iam_client.remove_role_from_instance_profile,
            InstanceProfileName=self.instance_profile_name,
            RoleName=self.role_name
        )
        return self._ignore_missing(
            "Delete instance profile",
            self.iam_client.delete_instance_profile,
            InstanceProfileName=self.instance_profile_name
        ) and ok

    def delete_role(self, delete_profile: bool = True) -> bool:
        """
        Delete the role, including its policies.

        Args:
            delete_profile: Also delete the instance profile. Otherwise the
                role is only removed from it.

        Returns:
            bool: True if every step succeeded.
        """
        logger.info(f"Deleting role {self.role_name}")

        if delete_profile:
            ok = self.delete_instance_profile()
        else:
            ok = self._ignore_missing(
                "Remove role from instance profile",
                self.iam_client.remove_role_from_instance_profile,
                InstanceProfileName=self.instance_profile_name,
                RoleName=self.role_name
            )

        try:
            attached = self.iam_client.list_attached_role_policies(
                RoleName=self.role_name
            )['AttachedPolicies']
            inline = self.iam_client.list_role_policies(RoleName=self.role_name)['PolicyNames']
        except ClientError as e:
            if client_error_code(e) == 'NoSuchEntity':
                logger.warning(f"Role {self.role_name} does not exist")
                return ok
            logger.error(f"Failed to list role policies: {e}")
            return False

        for policy in attached:
            ok = self._ignore_missing(
                f"Detach {policy['PolicyName']}",
                self.iam_client.detach_role_policy,
                RoleName=self.role_name,
                PolicyArn=policy['PolicyArn']
            ) and ok
        for policy_name in inline:
            ok = self._ignore_missing(
                f"Delete inline policy {policy_name}",
                self.iam_client.delete_role_policy,
                RoleName=self.role_name,
                PolicyName=policy_name
            ) and ok

        ok = self._ignore_missing(
            "Delete role",
            self.iam_client.delete_role,
            RoleName=self.role_name
        ) and ok

        if ok:
            logger.info(f"Deleted role {self.role_name}")
        return ok
