"""
AWS configuration settings.

Region, CloudFormation naming and the optional Step Functions and Lambda
resources used by the external job handlers.

Dependencies: pydantic, pydantic_settings
System role: External orchestration service configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from release_jobs.configs.base import BaseSettings


class AwsSettings(BaseSettings):
    """AWS external service configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AWS_",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Probe for AWS credentials at startup; false disables external jobs",
    )
    region: str = Field(default="ap-southeast-2", description="AWS region")

    stack_name_prefix: str = Field(
        default="release-access-point-",
        description="Prefix of CloudFormation stacks created per release",
    )
    stack_timeout_minutes: int = Field(
        default=5,
        ge=1,
        description="CloudFormation creation timeout",
    )

    execution_state_machine_arn: str | None = Field(
        default=None,
        description="Step Functions state machine used by execution jobs",
    )
    beacon_function_name: str | None = Field(
        default=None,
        description="Lambda function answering genotype queries against a VCF",
    )
