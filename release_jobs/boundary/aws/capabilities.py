"""
External capability probe.

Determined once at startup and injected into the external job handlers
and the selection predicate, instead of each client guessing whether
cloud access works.

Dependencies: boto3, botocore, release_jobs.configs
System role: Startup discovery of usable external services
"""

import logging
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from release_jobs.configs.aws import AwsSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalCapabilities:
    """
    What external services this process may use.

    Attributes:
        aws_enabled: Credentials resolved and accepted by STS
        region: AWS region in use
        account_id: Account the credentials belong to
        execution_state_machine_arn: Default state machine for execution jobs
        beacon_function_name: Genotype lookup function, if configured
    """

    aws_enabled: bool
    region: str | None = None
    account_id: str | None = None
    execution_state_machine_arn: str | None = None
    beacon_function_name: str | None = None

    @classmethod
    def disabled(cls) -> "ExternalCapabilities":
        return cls(aws_enabled=False)


def probe_capabilities(settings: AwsSettings, sts_client=None) -> ExternalCapabilities:
    """
    Probe AWS once and describe the usable external services.

    Args:
        settings: AWS settings
        sts_client: Preconfigured boto3 STS client (tests)

    Returns:
        ExternalCapabilities: Disabled when AWS is switched off in settings or
            the credentials are missing or rejected
    """
    if not settings.enabled:
        logger.info(f"{__name__}:probe_capabilities - AWS disabled by configuration")
        return ExternalCapabilities.disabled()

    try:
        client = sts_client or boto3.client("sts", region_name=settings.region)
        identity = client.get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        logger.warning(
            f"{__name__}:probe_capabilities - AWS unavailable, external jobs disabled: {e}",
            extra={"region": settings.region},
        )
        return ExternalCapabilities.disabled()

    logger.info(
        f"{__name__}:probe_capabilities - AWS enabled",
        extra={"region": settings.region, "account_id": identity.get("Account")},
    )
    return ExternalCapabilities(
        aws_enabled=True,
        region=settings.region,
        account_id=identity.get("Account"),
        execution_state_machine_arn=settings.execution_state_machine_arn,
        beacon_function_name=settings.beacon_function_name,
    )
