"""
Step Functions client for external executions.

Starts a state machine execution and reports its status, including the
item counts of its distributed map run when the execution has exactly one.

Dependencies: boto3, botocore
System role: ExecutionService implementation used by the external execution job
"""

import asyncio
import json
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from release_jobs.boundary.aws.orchestration import (
    ExecutionDescription,
    ExternalStatus,
    ItemCounts,
)
from release_jobs.core.exceptions import ExternalServiceError, ExternalTriggerError

logger = logging.getLogger(__name__)

EXECUTION_STATUSES: dict[str, ExternalStatus] = {
    "RUNNING": ExternalStatus.IN_PROGRESS,
    "PENDING_REDRIVE": ExternalStatus.IN_PROGRESS,
    "SUCCEEDED": ExternalStatus.COMPLETE,
    "FAILED": ExternalStatus.FAILED,
    "TIMED_OUT": ExternalStatus.FAILED,
    "ABORTED": ExternalStatus.FAILED,
}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class StepFunctionsExecutionClient:
    """Step Functions execution operations."""

    def __init__(self, region: str = "ap-southeast-2", client=None) -> None:
        """
        Initialize Step Functions client.

        Args:
            region: AWS region of the state machines
            client: Preconfigured boto3 stepfunctions client (tests)
        """
        self._client = client or boto3.client("stepfunctions", region_name=region)

    async def start(self, state_machine_arn: str, execution_input: dict[str, Any]) -> str:
        """
        Start an execution.

        Args:
            state_machine_arn: State machine to run
            execution_input: JSON-serialisable execution input

        Returns:
            str: Execution ARN

        Raises:
            ExternalTriggerError: If the execution could not be started
        """
        try:
            response = await asyncio.to_thread(
                self._client.start_execution,
                stateMachineArn=state_machine_arn,
                input=json.dumps(execution_input),
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalTriggerError(
                f"Could not start execution of {state_machine_arn}: {e}",
                operation="start_execution",
                details={"state_machine_arn": state_machine_arn},
            ) from e

        execution_arn = response.get("executionArn")
        if not execution_arn:
            raise ExternalTriggerError(
                f"Step Functions returned no execution ARN for {state_machine_arn}",
                operation="start_execution",
            )
        logger.info(f"{__name__}:start - Started execution {execution_arn}")
        return execution_arn

    async def describe(self, handle: str) -> ExecutionDescription:
        """
        Report the state of an execution.

        Args:
            handle: Execution ARN

        Returns:
            ExecutionDescription: NOT_FOUND when the execution does not exist

        Raises:
            ExternalServiceError: On a transient or unexpected Step Functions error
        """
        try:
            response = await asyncio.to_thread(self._client.describe_execution, executionArn=handle)
        except ClientError as e:
            if _error_code(e) == "ExecutionDoesNotExist":
                return ExecutionDescription(status=ExternalStatus.NOT_FOUND)
            raise ExternalServiceError(str(e), operation="describe_execution") from e
        except BotoCoreError as e:
            raise ExternalServiceError(str(e), operation="describe_execution") from e

        raw_status = response.get("status", "")
        return ExecutionDescription(
            status=EXECUTION_STATUSES.get(raw_status, ExternalStatus.FAILED),
            raw_status=raw_status,
            item_counts=await self._map_run_item_counts(handle),
        )

    async def _map_run_item_counts(self, handle: str) -> ItemCounts | None:
        try:
            map_runs = await asyncio.to_thread(self._client.list_map_runs, executionArn=handle)
            runs = map_runs.get("mapRuns", [])
            if len(runs) != 1:
                return None
            map_run = await asyncio.to_thread(self._client.describe_map_run, mapRunArn=runs[0]["mapRunArn"])
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"{__name__}:_map_run_item_counts - Map run stats unavailable for {handle}: {e}")
            return None

        counts = map_run.get("itemCounts")
        if not counts:
            return None
        return ItemCounts(
            total=counts.get("total", 0),
            succeeded=counts.get("succeeded", 0),
            failed=counts.get("failed", 0),
            aborted=counts.get("aborted", 0),
            timed_out=counts.get("timedOut", 0),
        )
