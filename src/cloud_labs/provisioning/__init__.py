"""
Lab environment provisioning with Boto3.

Reference solution for the provisioning starter script: bucket, topic,
role, policies, instance profile, instance and Elastic IP.
"""

from .s3_setup import BucketCreator
from .sns_setup import SNSTopicSetup
from .iam_setup import IAMRoleSetup
from .ec2_setup import EC2InstanceLauncher
from .provision_lab import LabEnvironmentProvisioner, ProvisioningResult

__all__ = [
    "BucketCreator",
    "SNSTopicSetup",
    "IAMRoleSetup",
    "EC2InstanceLauncher",
    "LabEnvironmentProvisioner",
    "ProvisioningResult",
]
