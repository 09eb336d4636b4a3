"""Configuration management for the cloud labs tooling."""

import os
from typing import List, Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _split_env(name: str) -> List[str]:
    """Read a comma separated environment variable into a list."""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class AWSConfig(BaseModel):
    """AWS configuration settings."""

    region: str = Field(default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))
    account_id: Optional[str] = Field(default_factory=lambda: os.getenv("AWS_ACCOUNT_ID"))


class ProvisioningConfig(BaseModel):
    """Settings for the lab environment provisioning script."""

    bucket_name: str = Field(default_factory=lambda: os.getenv("LAB_BUCKET_NAME", ""))
    role_name: str = Field(default_factory=lambda: os.getenv("LAB_ROLE_NAME", "cloud-labs-ec2-role"))
    instance_profile_name: str = Field(
        default_factory=lambda: os.getenv("LAB_INSTANCE_PROFILE", "cloud-labs-ec2-profile")
    )
    ami_id: str = Field(default_factory=lambda: os.getenv("LAB_AMI_ID", ""))
    instance_type: str = Field(default_factory=lambda: os.getenv("LAB_INSTANCE_TYPE", "t2.micro"))
    key_name: Optional[str] = Field(default_factory=lambda: os.getenv("LAB_KEY_NAME"))
    security_group_ids: List[str] = Field(default_factory=lambda: _split_env("LAB_SECURITY_GROUP_IDS"))
    subnet_id: Optional[str] = Field(default_factory=lambda: os.getenv("LAB_SUBNET_ID"))
    topic_name: str = Field(default_factory=lambda: os.getenv("LAB_TOPIC_NAME", "cloud-labs-s3-events"))
    managed_policy_arn: str = Field(
        default_factory=lambda: os.getenv(
            "LAB_MANAGED_POLICY_ARN", "arn:aws:iam::aws:policy/AmazonS3ReadOnlyAccess"
        )
    )


class WebhookConfig(BaseModel):
    """SNS webhook receiver configuration."""

    host: str = Field(default_factory=lambda: os.getenv("WEBHOOK_HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("WEBHOOK_PORT", "8080")))
    allowed_topic_arns: List[str] = Field(default_factory=lambda: _split_env("WEBHOOK_ALLOWED_TOPIC_ARNS"))
    auto_confirm: bool = Field(default_factory=lambda: _env_flag("WEBHOOK_AUTO_CONFIRM"))
    max_events: int = Field(default_factory=lambda: int(os.getenv("WEBHOOK_MAX_EVENTS", "100")))


class LabsConfig(BaseModel):
    """Location of the course content."""

    labs_dir: str = Field(default_factory=lambda: os.getenv("LABS_DIR", "labs"))
    index_file: str = Field(default_factory=lambda: os.getenv("LABS_INDEX", "README.md"))


class Config(BaseModel):
    """Main configuration object."""

    aws: AWSConfig = Field(default_factory=AWSConfig)
    provisioning: ProvisioningConfig = Field(default_factory=ProvisioningConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    labs: LabsConfig = Field(default_factory=LabsConfig)

    # Project settings
    project_name: str = "cloud-labs"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "dev"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


# Global configuration instance
config = Config()
