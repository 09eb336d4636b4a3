"""
Provision (and tear down) the complete lab environment.

Runs, in order:
1. S3 bucket with versioning and public access blocked
2. SNS topic the bucket publishes ObjectCreated events to
3. Optional webhook subscription on the topic
4. IAM role, managed + inline policies, and instance profile
5. EC2 instance with the profile, plus an Elastic IP
"""

import json
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..config import ProvisioningConfig
from ..exceptions import ProvisioningError
from ..utils.logger import get_logger
from .s3_setup import BucketCreator
from .sns_setup import SNSTopicSetup
from .iam_setup import IAMRoleSetup
from .ec2_setup import EC2InstanceLauncher

logger = get_logger(__name__)

CREATE_BUCKET = "Create S3 bucket"
CREATE_TOPIC = "Create SNS topic"
SUBSCRIBE_WEBHOOK = "Subscribe webhook endpoint"
CREATE_ROLE = "Create IAM role"
CREATE_INSTANCE_PROFILE = "Create instance profile"
LAUNCH_INSTANCE = "Launch EC2 instance"
ALLOCATE_ADDRESS = "Allocate Elastic IP"


class ProvisioningResult(BaseModel):
    """Identifiers of everything created by a provisioning run."""

    region: str
    bucket_name: str
    topic_arn: Optional[str] = None
    subscription_arn: Optional[str] = None
    role_name: Optional[str] = None
    role_arn: Optional[str] = None
    instance_profile_name: Optional[str] = None
    instance_profile_arn: Optional[str] = None
    instance_id: Optional[str] = None
    allocation_id: Optional[str] = None
    association_id: Optional[str] = None
    public_ip: Optional[str] = None
    completed_steps: List[str] = Field(default_factory=list)
    # Completed steps that found the resource already there
    preexisting: List[str] = Field(default_factory=list)
    failed_step: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failed_step is None

    def save(self, path: str) -> None:
        Path(path).write_text(self.model_dump_json(indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: str) -> "ProvisioningResult":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


class LabEnvironmentProvisioner:
    """Creates the lab resources step by step and removes them again."""

    def __init__(
        self,
        settings: ProvisioningConfig,
        region: str = 'us-east-1',
        webhook_url: Optional[str] = None,
        skip_instance: bool = False,
        bucket: Optional[BucketCreator] = None,
        topic: Optional[SNSTopicSetup] = None,
        iam: Optional[IAMRoleSetup] = None,
        ec2: Optional[EC2InstanceLauncher] = None
    ):
        """
        Initialize the provisioner.

        Args:
            settings: Provisioning settings (names, AMI, instance type, ...)
            region: AWS region
            webhook_url: HTTP(S) endpoint to subscribe to the topic
            skip_instance: Only create storage, messaging and IAM resources
            bucket, topic, iam, ec2: Pre-built helpers, mainly for tests
        """
        self.settings = settings
        self.region = region
        self.webhook_url = webhook_url
        self.skip_instance = skip_instance

        self.bucket = bucket or BucketCreator(settings.bucket_name, region=region)
        self.topic = topic or SNSTopicSetup(settings.topic_name, region=region)
        self.iam = iam or IAMRoleSetup(
            role_name=settings.role_name,
            instance_profile_name=settings.instance_profile_name,
            region=region
        )
        self.ec2 = ec2 if ec2 is not None else (None if skip_instance else EC2InstanceLauncher(region=region))

        self.result = ProvisioningResult(
            region=region,
            bucket_name=settings.bucket_name,
            role_name=settings.role_name,
            instance_profile_name=settings.instance_profile_name
        )

    # Individual steps: each returns True on success and records identifiers

    def _create_bucket(self) -> bool:
        ok = self.bucket.create_bucket()
        if ok and self.bucket.existed:
            self.result.preexisting.append(CREATE_BUCKET)
        return ok

    def _create_topic(self) -> bool:
        self.result.topic_arn = self.topic.create_topic()
        return bool(self.result.topic_arn)

    def _subscribe_webhook(self) -> bool:
        subscription = self.topic.subscribe_endpoint(self.result.topic_arn, self.webhook_url)
        self.result.subscription_arn = subscription['subscription_arn']
        return True

    def _create_role(self) -> bool:
        self.result.role_arn = self.iam.create_role()
        if self.result.role_arn is None:
            return False
        if self.iam.role_existed:
            self.result.preexisting.append(CREATE_ROLE)
        return True

    def _create_instance_profile(self) -> bool:
        self.result.instance_profile_arn = self.iam.create_instance_profile()
        if self.result.instance_profile_arn is None:
            return False
        if self.iam.profile_existed:
            self.result.preexisting.append(CREATE_INSTANCE_PROFILE)
        return True

    def _launch_instance(self) -> bool:
        self.result.instance_id = self.ec2.launch_instance(
            ami_id=self.settings.ami_id,
            instance_type=self.settings.instance_type,
            key_name=self.settings.key_name,
            security_group_ids=self.settings.security_group_ids,
            subnet_id=self.settings.subnet_id,
            instance_profile_name=self.settings.instance_profile_name
        )
        return self.result.instance_id is not None

    def _allocate_address(self) -> bool:
        address = self.ec2.allocate_address()
        if address is None:
            return False
        self.result.allocation_id = address['allocation_id']
        self.result.public_ip = address['public_ip']
        return True

    def _associate_address(self) -> bool:
        self.result.association_id = self.ec2.associate_address(
            self.result.allocation_id, self.result.instance_id
        )
        return self.result.association_id is not None

    def steps(self) -> List[Tuple[str, Callable[[], bool]]]:
        """Ordered provisioning steps for the current settings."""
        bucket_name = self.settings.bucket_name
        steps: List[Tuple[str, Callable[[], bool]]] = [
            (CREATE_BUCKET, self._create_bucket),
            ("Enable bucket versioning", self.bucket.enable_versioning),
            ("Block bucket public access", self.bucket.block_public_access),
            (CREATE_TOPIC, self._create_topic),
            ("Allow S3 to publish to topic",
             lambda: self.topic.allow_s3_publish(self.result.topic_arn, bucket_name)),
            ("Configure bucket notification",
             lambda: self.bucket.configure_topic_notification(self.result.topic_arn)),
        ]

        if self.webhook_url:
            steps.append((SUBSCRIBE_WEBHOOK, self._subscribe_webhook))

        steps.extend([
            (CREATE_ROLE, self._create_role),
            ("Attach managed policy",
             lambda: self.iam.attach_policy(self.settings.managed_policy_arn)),
            ("Put inline S3 policy",
             lambda: self.iam.put_inline_policy(
                 f"{self.settings.role_name}-S3Access",
                 self.iam.get_s3_access_policy(bucket_name))),
            (CREATE_INSTANCE_PROFILE, self._create_instance_profile),
            ("Add role to instance profile", self.iam.add_role_to_instance_profile),
        ])

        if not self.skip_instance:
            steps.extend([
                (LAUNCH_INSTANCE, self._launch_instance),
                ("Wait for instance to run",
                 lambda: self.ec2.wait_until_running(self.result.instance_id)),
                (ALLOCATE_ADDRESS, self._allocate_address),
                ("Associate Elastic IP", self._associate_address),
            ])

        return steps

    def setup_environment(self) -> ProvisioningResult:
        """
        Run every provisioning step, stopping at the first failure.

        Returns:
            ProvisioningResult: What was created and which step failed, if any.
        """
        logger.info("=" * 80)
        logger.info("Starting Lab Environment Provisioning")
        logger.info("=" * 80)

        if not self.skip_instance and not self.settings.ami_id:
            raise ProvisioningError(LAUNCH_INSTANCE, "an AMI ID is required (set LAB_AMI_ID or --ami)")

        for step_name, step_func in self.steps():
            logger.info(f"[STEP] {step_name}")
            try:
                ok = step_func()
            except (ValueError, ProvisioningError) as e:
                logger.error(f"{step_name}: {e}")
                ok = False
            except Exception as e:
                logger.error(f"Unexpected error in step '{step_name}': {e}", exc_info=True)
                ok = False

            if not ok:
                logger.error(f"Failed: {step_name}")
                self.result.failed_step = step_name
                break

            logger.info(f"Completed: {step_name}")
            self.result.completed_steps.append(step_name)

        logger.info("=" * 80)
        if self.result.succeeded:
            logger.info("SUCCESS: Lab environment provisioned")
        else:
            logger.error("FAILED: Provisioning stopped, see the failed step above")
        logger.info("=" * 80)

        self.summary()
        return self.result

    def summary(self) -> None:
        """Log the identifiers recorded so far."""
        result = self.result
        logger.info("Lab Environment:")
        logger.info(f"  Region: {result.region}")
        logger.info(f"  Bucket: {result.bucket_name}")
        logger.info(f"  Topic ARN: {result.topic_arn or '-'}")
        logger.info(f"  Subscription: {result.subscription_arn or '-'}")
        logger.info(f"  Role ARN: {result.role_arn or '-'}")
        logger.info(f"  Instance Profile ARN: {result.instance_profile_arn or '-'}")
        logger.info(f"  Instance ID: {result.instance_id or '-'}")
        logger.info(f"  Elastic IP: {result.public_ip or '-'} ({result.allocation_id or '-'})")
        logger.info(f"  Completed steps: {len(result.completed_steps)}")

    def teardown(self, result: Optional[ProvisioningResult] = None, force_bucket: bool = True) -> bool:
        """
        Remove the resources a run created, newest first.

        Only resources whose creation step completed are removed; resources
        that already existed before the run are left alone. Keeps going
        after individual failures.

        Args:
            result: Result of an earlier run. Defaults to this run's result.
            force_bucket: Empty the bucket before deleting it.

        Returns:
            bool: True if every removal succeeded.
        """
        result = result or self.result
        logger.info("=" * 80)
        logger.info("Starting Lab Environment Teardown")
        logger.info("=" * 80)

        def created(step: str) -> bool:
            return step in result.completed_steps and step not in result.preexisting

        for step in result.preexisting:
            logger.info(f"Keeping pre-existing resource from step: {step}")

        actions: List[Tuple[str, Callable[[], bool]]] = []
        if created(ALLOCATE_ADDRESS) and result.allocation_id and self.ec2 is not None:
            actions.append(("Release Elastic IP", lambda: self.ec2.release_address(result.allocation_id)))
        if created(LAUNCH_INSTANCE) and result.instance_id and self.ec2 is not None:
            actions.append(("Terminate EC2 instance", lambda: self.ec2.terminate_instance(result.instance_id)))
        if created(CREATE_INSTANCE_PROFILE):
            actions.append(("Delete instance profile", self.iam.delete_instance_profile))
        if created(CREATE_ROLE):
            actions.append(("Delete IAM role", lambda: self.iam.delete_role(delete_profile=False)))
        if created(SUBSCRIBE_WEBHOOK) and result.subscription_arn:
            actions.append(("Remove webhook subscription", lambda: self.topic.unsubscribe(result.subscription_arn)))
        if created(CREATE_TOPIC) and result.topic_arn:
            actions.append(("Delete SNS topic", lambda: self.topic.delete_topic(result.topic_arn)))
        if created(CREATE_BUCKET):
            actions.append(("Delete S3 bucket", lambda: self.bucket.delete_bucket(force=force_bucket)))

        if not actions:
            logger.info("Nothing to remove")

        all_successful = True
        for action_name, action in actions:
            logger.info(f"[STEP] {action_name}")
            if action():
                logger.info(f"Completed: {action_name}")
            else:
                logger.error(f"Failed: {action_name}")
                all_successful = False

        if all_successful:
            logger.info("SUCCESS: Lab environment removed")
        else:
            logger.error("FAILED: Some resources could not be removed")
        return all_successful


def run_provision(args) -> int:
    """
    Entry point for `cloud-labs provision`.

    Args:
        args: Parsed argparse namespace

    Returns:
        Process exit code.
    """
    from ..config import config

    settings = config.provisioning.model_copy(deep=True)
    if args.bucket:
        settings.bucket_name = args.bucket
    if args.ami:
        settings.ami_id = args.ami
    if args.instance_type:
        settings.instance_type = args.instance_type
    if args.key_name:
        settings.key_name = args.key_name

    region = args.region or config.aws.region

    try:
        if args.teardown:
            previous = ProvisioningResult.load(args.teardown)
            settings.bucket_name = previous.bucket_name
            settings.role_name = previous.role_name or settings.role_name
            settings.instance_profile_name = previous.instance_profile_name or settings.instance_profile_name
            provisioner = LabEnvironmentProvisioner(
                settings,
                region=previous.region,
                skip_instance=previous.instance_id is None and previous.allocation_id is None
            )
            return 0 if provisioner.teardown(previous) else 1

        if not settings.bucket_name:
            logger.error("A bucket name is required (set LAB_BUCKET_NAME or --bucket)")
            return 1

        provisioner = LabEnvironmentProvisioner(
            settings,
            region=region,
            webhook_url=args.webhook_url,
            skip_instance=args.skip_instance
        )
        result = provisioner.setup_environment()

        if args.output:
            result.save(args.output)
            logger.info(f"Saved provisioning result to {args.output}")
        else:
            print(json.dumps(result.model_dump(), indent=2))

        return 0 if result.succeeded else 1

    except ProvisioningError as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Failed to provision lab environment: {e}", exc_info=True)
        return 1
