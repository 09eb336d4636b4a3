"""
Cloud Computing Labs

Reference tooling for the course labs:
- Lab environment provisioning with Boto3 (S3, SNS, IAM, EC2, Elastic IP)
- SNS push-notification webhook receiver for S3 events
- Lab handout format validation
"""

__version__ = "0.1.0"
