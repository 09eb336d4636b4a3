"""Exception types raised by the cloud labs tooling."""


class CloudLabsError(Exception):
    """Base class for errors raised by this package."""


class ProvisioningError(CloudLabsError):
    """A provisioning step could not be completed."""

    def __init__(self, step: str, message: str):
        super().__init__(f"{step}: {message}")
        self.step = step


class EnvelopeError(CloudLabsError):
    """An SNS envelope or the S3 event inside it could not be parsed."""


class LabFormatError(CloudLabsError):
    """A lab document could not be read."""
