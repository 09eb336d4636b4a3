"""
Launch the lab EC2 instance and give it a stable public address.

Covers:
- run_instances with an IAM instance profile attached
- Waiting for the running state
- Elastic IP allocation, association and release
"""

import time
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError, WaiterError

from ..utils.logger import get_logger
from ..utils.aws_helpers import get_boto3_client, client_error_code, DEFAULT_TAGS

logger = get_logger(__name__)


class EC2InstanceLauncher:
    """Manages the lab instance and its Elastic IP."""

    def __init__(
        self,
        region: str = 'us-east-1',
        profile_retries: int = 5,
        retry_delay: float = 10.0
    ):
        """
        Initialize EC2 Instance Launcher.

        Args:
            region: AWS region.
            profile_retries: Launch attempts while a new instance profile propagates.
            retry_delay: Seconds between those attempts.
        """
        self.region = region
        self.profile_retries = profile_retries
        self.retry_delay = retry_delay
        self.ec2_client = get_boto3_client('ec2', region=region)
        logger.info(f"Initialized EC2InstanceLauncher in {self.region}")

    @staticmethod
    def _is_profile_propagation_error(error: ClientError) -> bool:
        message = error.response.get('Error', {}).get('Message', '')
        return (
            client_error_code(error) == 'InvalidParameterValue'
            and 'iamInstanceProfile' in message.replace(' ', '')
        )

    def launch_instance(
        self,
        ami_id: str,
        instance_type: str = 't2.micro',
        key_name: Optional[str] = None,
        security_group_ids: Optional[List[str]] = None,
        subnet_id: Optional[str] = None,
        instance_profile_name: Optional[str] = None,
        user_data: Optional[str] = None,
        name: str = 'cloud-labs-instance',
        tags: Optional[List[Dict[str, str]]] = None
    ) -> Optional[str]:
        """
        Launch a single EC2 instance.

        Args:
            ami_id: AMI to boot
            instance_type: Instance type
            key_name: EC2 key pair for SSH
            security_group_ids: Security groups to attach
            subnet_id: Subnet to launch into
            instance_profile_name: IAM instance profile name
            user_data: Cloud-init script
            name: Value of the Name tag
            tags: Extra tags

        Returns:
            str: Instance ID if launched, None otherwise.
        """
        if not ami_id:
            logger.error("An AMI ID is required to launch an instance")
            return None

        instance_tags = [{'Key': 'Name', 'Value': name}] + DEFAULT_TAGS + (tags or [])
        params: Dict[str, Any] = {
            'ImageId': ami_id,
            'InstanceType': instance_type,
            'MinCount': 1,
            'MaxCount': 1,
            'TagSpecifications': [
                {'ResourceType': 'instance', 'Tags': instance_tags}
            ]
        }
        if key_name:
            params['KeyName'] = key_name
        if security_group_ids:
            params['SecurityGroupIds'] = list(security_group_ids)
        if subnet_id:
            params['SubnetId'] = subnet_id
        if instance_profile_name:
            params['IamInstanceProfile'] = {'Name': instance_profile_name}
        if user_data:
            params['UserData'] = user_data

        attempts = max(1, self.profile_retries)
        for attempt in range(1, attempts + 1):
            try:
                logger.info(f"Launching {instance_type} instance from {ami_id} (attempt {attempt})")
                response = self.ec2_client.run_instances(**params)
                instance_id = response['Instances'][0]['InstanceId']
                logger.info(f"Launched instance: {instance_id}")
                return instance_id

            except ClientError as e:
                # New instance profiles take a few seconds to become visible to EC2
                if self._is_profile_propagation_error(e) and attempt < attempts:
                    logger.warning(
                        f"Instance profile not yet visible to EC2, retrying in {self.retry_delay}s"
                    )
                    time.sleep(self.retry_delay)
                    continue
                logger.error(f"Failed to launch instance: {e}")
                return None

        return None

    def wait_until_running(self, instance_id: str, delay: int = 5, max_attempts: int = 40) -> bool:
        """
        Block until the instance reaches the running state.

        Args:
            instance_id: Instance to wait for
            delay: Seconds between polls
            max_attempts: Maximum number of polls

        Returns:
            bool: True once running, False on timeout or failure.
        """
        try:
            logger.info(f"Waiting for instance {instance_id} to enter running state")
            waiter = self.ec2_client.get_waiter('instance_running')
            waiter.wait(
                InstanceIds=[instance_id],
                WaiterConfig={'Delay': delay, 'MaxAttempts': max_attempts}
            )
            logger.info(f"Instance {instance_id} is running")
            return True

        except WaiterError as e:
            logger.error(f"Instance {instance_id} did not reach running state: {e}")
            return False

    def allocate_address(self) -> Optional[Dict[str, str]]:
        """
        Allocate an Elastic IP address in the VPC domain.

        Returns:
            dict: allocation_id and public_ip, None on failure.
        """
        try:
            logger.info("Allocating Elastic IP address")
            response = self.ec2_client.allocate_address(
                Domain='vpc',
                TagSpecifications=[
                    {'ResourceType': 'elastic-ip', 'Tags': DEFAULT_TAGS}
                ]
            )
            address = {
                'allocation_id': response['AllocationId'],
                'public_ip': response['PublicIp']
            }
            logger.info(f"Allocated {address['public_ip']} ({address['allocation_id']})")
            return address

        except ClientError as e:
            logger.error(f"Failed to allocate address: {e}")
            return None

    def associate_address(self, allocation_id: str, instance_id: str) -> Optional[str]:
        """
        Associate an Elastic IP with an instance.

        Args:
            allocation_id: Elastic IP allocation ID
            instance_id: Target instance

        Returns:
            str: Association ID, None on failure.
        """
        try:
            logger.info(f"Associating {allocation_id} with {instance_id}")
            response = self.ec2_client.associate_address(
                AllocationId=allocation_id,
                InstanceId=instance_id
            )
            association_id = response['AssociationId']
            logger.info(f"Associated address: {association_id}")
            return association_id

        except ClientError as e:
            logger.error(f"Failed to associate address: {e}")
            return None

    def describe_instance(self, instance_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a summary of an instance.

        Args:
            instance_id: Instance to describe

        Returns:
            dict: Instance summary, None if it cannot be described.
        """
        try:
            response = self.ec2_client.describe_instances(InstanceIds=[instance_id])
            reservations = response.get('Reservations', [])
            if not reservations or not reservations[0].get('Instances'):
                logger.warning(f"Instance {instance_id} not found")
                return None

            instance = reservations[0]['Instances'][0]
            return {
                'instance_id': instance['InstanceId'],
                'state': instance.get('State', {}).get('Name'),
                'instance_type': instance.get('InstanceType'),
                'public_ip': instance.get('PublicIpAddress'),
                'private_ip': instance.get('PrivateIpAddress'),
                'instance_profile_arn': instance.get('IamInstanceProfile', {}).get('Arn')
            }

        except ClientError as e:
            logger.error(f"Failed to describe instance {instance_id}: {e}")
            return None

    def release_address(self, allocation_id: str) -> bool:
        """
        Disassociate (when needed) and release an Elastic IP.

        Args:
            allocation_id: Elastic IP allocation ID

        Returns:
            bool: True if released or already gone.
        """
        try:
            response = self.ec2_client.describe_addresses(AllocationIds=[allocation_id])
            for address in response.get('Addresses', []):
                association_id = address.get('AssociationId')
                if association_id:
                    logger.info(f"Disassociating {association_id}")
                    self.ec2_client.disassociate_address(AssociationId=association_id)

            logger.info(f"Releasing address {allocation_id}")
            self.ec2_client.release_address(AllocationId=allocation_id)
            logger.info(f"Released address {allocation_id}")
            return True

        except ClientError as e:
            if client_error_code(e) == 'InvalidAllocationID.NotFound':
                logger.warning(f"Address {allocation_id} already released")
                return True
            logger.error(f"Failed to release address: {e}")
            return False

    def terminate_instance(self, instance_id: str, wait: bool = True) -> bool:
        """
        Terminate an instance.

        Args:
            instance_id: Instance to terminate
            wait: Block until terminated

        Returns:
            bool: True if successful, False otherwise.
        """
        try:
            logger.info(f"Terminating instance {instance_id}")
            self.ec2_client.terminate_instances(InstanceIds=[instance_id])
            if wait:
                self.ec2_client.get_waiter('instance_terminated').wait(InstanceIds=[instance_id])
            logger.info(f"Terminated instance {instance_id}")
            return True

        except ClientError as e:
            if client_error_code(e) == 'InvalidInstanceID.NotFound':
                logger.warning(f"Instance {instance_id} does not exist")
                return True
            logger.error(f"Failed to terminate instance: {e}")
            return False
        except WaiterError as e:
            logger.error(f"Instance {instance_id} did not terminate: {e}")
            return False
