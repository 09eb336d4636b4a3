"""Command line entry point: ``cloud-labs <command>``."""

import argparse
import sys
from typing import List, Optional

from .config import config
from .utils.logger import get_logger, set_log_level

logger = get_logger(__name__)


def _cmd_provision(args: argparse.Namespace) -> int:
    from .provisioning.provision_lab import run_provision

    return run_provision(args)


def _cmd_serve(args: argparse.Namespace) -> int:
    from .webhook.app import run_server

    settings = config.webhook.model_copy(deep=True)
    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port
    if args.topic_arn:
        settings.allowed_topic_arns = list(args.topic_arn)
    if args.no_confirm:
        settings.auto_confirm = False

    run_server(settings)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    from .labs.validator import ERROR, validate_course

    issues = validate_course(args.index, args.labs_dir)
    for issue in issues:
        print(issue)

    errors = [issue for issue in issues if issue.severity == ERROR]
    warnings = len(issues) - len(errors)
    print(f"{len(errors)} error(s), {warnings} warning(s)")

    if errors or (args.strict and warnings):
        return 1
    return 0


def _cmd_events(args: argparse.Namespace) -> int:
    from botocore.exceptions import ClientError

    from .provisioning.s3_setup import describe_notifications

    try:
        lines = describe_notifications(args.bucket, region=args.region or config.aws.region)
    except ClientError as e:
        logger.error(f"Could not read notifications for bucket {args.bucket}: {e}")
        return 1

    for line in lines:
        print(line)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cloud-labs',
        description='Reference tooling for the cloud computing labs'
    )
    parser.add_argument(
        '--log-level',
        default=None,
        help=f'Override log level (default: {config.log_level})'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    provision = subparsers.add_parser('provision', help='Provision or tear down the lab environment')
    provision.add_argument('--bucket', help='Lab bucket name (default: LAB_BUCKET_NAME)')
    provision.add_argument('--ami', help='AMI ID for the lab instance (default: LAB_AMI_ID)')
    provision.add_argument('--instance-type', help='EC2 instance type (default: LAB_INSTANCE_TYPE)')
    provision.add_argument('--key-name', help='EC2 key pair name')
    provision.add_argument('--webhook-url', help='HTTP(S) endpoint to subscribe to the SNS topic')
    provision.add_argument('--region', help=f'AWS region (default: {config.aws.region})')
    provision.add_argument(
        '--skip-instance',
        action='store_true',
        help='Create bucket, topic and IAM resources only'
    )
    provision.add_argument('--output', help='Write the provisioning result JSON to this file')
    provision.add_argument(
        '--teardown',
        metavar='FILE',
        help='Remove the resources recorded in a saved result file'
    )
    provision.set_defaults(func=_cmd_provision)

    serve = subparsers.add_parser('serve', help='Run the SNS webhook receiver')
    serve.add_argument('--host', help=f'Bind address (default: {config.webhook.host})')
    serve.add_argument('--port', type=int, help=f'Port (default: {config.webhook.port})')
    serve.add_argument(
        '--topic-arn',
        action='append',
        help='Accept messages only from this topic (repeatable)'
    )
    serve.add_argument(
        '--no-confirm',
        action='store_true',
        help='Do not confirm subscriptions automatically'
    )
    serve.set_defaults(func=_cmd_serve)

    validate = subparsers.add_parser('validate', help='Check lab handouts and the README index')
    validate.add_argument('--labs-dir', default=config.labs.labs_dir, help='Directory of lab handouts')
    validate.add_argument('--index', default=config.labs.index_file, help='README index file')
    validate.add_argument('--strict', action='store_true', help='Treat warnings as errors')
    validate.set_defaults(func=_cmd_validate)

    events = subparsers.add_parser('events', help="Show a bucket's SNS notification configuration")
    events.add_argument('bucket', help='Name of the S3 bucket')
    events.add_argument('--region', help=f'AWS region (default: {config.aws.region})')
    events.set_defaults(func=_cmd_events)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the cloud-labs command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        set_log_level(args.log_level)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except Exception as e:
        logger.error(f"Command '{args.command}' failed: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
