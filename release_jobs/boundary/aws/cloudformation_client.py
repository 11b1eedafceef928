"""
CloudFormation client for per-release stacks.

Creates a release's stack from a template URL, deletes it, and reports its
status by stack id. botocore errors are translated into the service's
ExternalServiceError hierarchy.

Dependencies: boto3, botocore
System role: ResourceOrchestrator implementation used by the external create/delete jobs
"""

import asyncio
import logging
import re

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from release_jobs.boundary.aws.orchestration import ExternalStatus, ResourceDescription
from release_jobs.core.exceptions import (
    ExternalResourceNotFoundError,
    ExternalServiceError,
    ExternalTriggerError,
    UnexpectedCardinalityError,
)

logger = logging.getLogger(__name__)

CREATE_COMPLETE = "CREATE_COMPLETE"
DELETE_COMPLETE = "DELETE_COMPLETE"

_INVALID_STACK_CHARS = re.compile(r"[^A-Za-z0-9-]")


def classify_stack_status(raw_status: str, success_status: str) -> ExternalStatus:
    """
    Reduce a CloudFormation stack status to an ExternalStatus.

    Args:
        raw_status: StackStatus as reported by CloudFormation
        success_status: The status that means the job's operation succeeded

    Returns:
        ExternalStatus: COMPLETE on the success status, IN_PROGRESS on any
            *_IN_PROGRESS status, FAILED otherwise (rollbacks, *_FAILED,
            or the stack settling in an unexpected terminal state)
    """
    if raw_status == success_status:
        return ExternalStatus.COMPLETE
    if raw_status.endswith("_IN_PROGRESS"):
        return ExternalStatus.IN_PROGRESS
    return ExternalStatus.FAILED


def _is_missing_stack(error: ClientError) -> bool:
    message = error.response.get("Error", {}).get("Message", "")
    return "does not exist" in message


class CloudFormationStackClient:
    """CloudFormation stack operations for release resources."""

    def __init__(
        self,
        region: str = "ap-southeast-2",
        stack_name_prefix: str = "release-access-point-",
        timeout_minutes: int = 5,
        client=None,
    ) -> None:
        """
        Initialize CloudFormation client.

        Args:
            region: AWS region of the stacks
            stack_name_prefix: Prefix of every per-release stack name
            timeout_minutes: Creation timeout passed to CloudFormation
            client: Preconfigured boto3 CloudFormation client (tests)
        """
        self._prefix = stack_name_prefix
        self._timeout_minutes = timeout_minutes
        self._client = client or boto3.client("cloudformation", region_name=region)

    def resource_name_for_release(self, release_key: str) -> str:
        """
        Derive the stack name of a release.

        Stack names allow only letters, digits and hyphens and must start
        with a letter.
        """
        name = _INVALID_STACK_CHARS.sub("-", f"{self._prefix}{release_key}")
        if not name[:1].isalpha():
            name = f"r-{name}"
        return name[:128]

    async def trigger_create(self, name: str, template_location: str) -> str:
        """
        Start creating a stack.

        Args:
            name: Stack name
            template_location: S3 URL of the template

        Returns:
            str: Stack id of the new stack

        Raises:
            ExternalTriggerError: If CloudFormation rejected the request
        """
        try:
            response = await asyncio.to_thread(
                self._client.create_stack,
                StackName=name,
                TemplateURL=template_location,
                Capabilities=["CAPABILITY_IAM"],
                OnFailure="DELETE",
                TimeoutInMinutes=self._timeout_minutes,
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalTriggerError(
                f"Failed to trigger creation of stack {name}: {e}",
                operation="create_stack",
                details={"stack_name": name},
            ) from e

        stack_id = response.get("StackId")
        if not stack_id:
            raise ExternalTriggerError(
                f"CloudFormation returned no stack id for {name}",
                operation="create_stack",
            )
        logger.info(f"{__name__}:trigger_create - Creating stack {name} ({stack_id})")
        return stack_id

    async def trigger_delete(self, handle: str) -> None:
        """
        Start deleting a stack.

        Raises:
            ExternalTriggerError: If CloudFormation rejected the request
        """
        try:
            await asyncio.to_thread(self._client.delete_stack, StackName=handle)
        except (ClientError, BotoCoreError) as e:
            raise ExternalTriggerError(
                f"Failed to trigger deletion of stack {handle}: {e}",
                operation="delete_stack",
                details={"stack_id": handle},
            ) from e
        logger.info(f"{__name__}:trigger_delete - Deleting stack {handle}")

    async def _describe_stacks(self, stack_name: str) -> list[dict]:
        response = await asyncio.to_thread(self._client.describe_stacks, StackName=stack_name)
        return response.get("Stacks", [])

    async def find_by_name(self, name: str) -> str:
        """
        Resolve a stack name to its stack id.

        Returns:
            str: Stack id

        Raises:
            ExternalResourceNotFoundError: If no stack has the name
            UnexpectedCardinalityError: If more than one stack has the name
            ExternalServiceError: On any other CloudFormation error
        """
        try:
            stacks = await self._describe_stacks(name)
        except ClientError as e:
            if _is_missing_stack(e):
                stacks = []
            else:
                raise ExternalServiceError(str(e), operation="describe_stacks") from e
        except BotoCoreError as e:
            raise ExternalServiceError(str(e), operation="describe_stacks") from e

        if not stacks:
            raise ExternalResourceNotFoundError(
                f"No CloudFormation stack named {name}",
                operation="describe_stacks",
                details={"stack_name": name},
            )
        if len(stacks) > 1:
            raise UnexpectedCardinalityError(name, len(stacks), operation="describe_stacks")
        return stacks[0]["StackId"]

    async def describe(self, handle: str, success_status: str) -> ResourceDescription:
        """
        Report the state of a stack.

        Args:
            handle: Stack id
            success_status: Status meaning the job's operation succeeded

        Returns:
            ResourceDescription: NOT_FOUND when the stack no longer resolves

        Raises:
            UnexpectedCardinalityError: If the handle matches several stacks
            ExternalServiceError: On a transient or unexpected CloudFormation error
        """
        try:
            stacks = await self._describe_stacks(handle)
        except ClientError as e:
            if _is_missing_stack(e):
                return ResourceDescription(status=ExternalStatus.NOT_FOUND)
            raise ExternalServiceError(str(e), operation="describe_stacks") from e
        except BotoCoreError as e:
            raise ExternalServiceError(str(e), operation="describe_stacks") from e

        if not stacks:
            return ResourceDescription(status=ExternalStatus.NOT_FOUND)
        if len(stacks) > 1:
            raise UnexpectedCardinalityError(handle, len(stacks), operation="describe_stacks")

        stack = stacks[0]
        raw_status = stack.get("StackStatus", "")
        return ResourceDescription(
            status=classify_stack_status(raw_status, success_status),
            raw_status=raw_status,
            status_reason=stack.get("StackStatusReason"),
        )
