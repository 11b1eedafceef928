"""
Test suite for StepFunctionsExecutionClient.

System role: Verification of the external execution boundary
"""

from datetime import datetime, timezone

import boto3
import pytest
from botocore.stub import ANY, Stubber

from release_jobs.boundary.aws.orchestration import ExternalStatus
from release_jobs.boundary.aws.stepfunctions_client import StepFunctionsExecutionClient
from release_jobs.core.exceptions import ExternalServiceError, ExternalTriggerError

STATE_MACHINE_ARN = "arn:aws:states:ap-southeast-2:123456789012:stateMachine:release"
EXECUTION_ARN = "arn:aws:states:ap-southeast-2:123456789012:execution:release:run-1"
MAP_RUN_ARN = "arn:aws:states:ap-southeast-2:123456789012:mapRun:release/map:run-1"
STARTED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _counts(total: int, succeeded: int, failed: int = 0) -> dict:
    return {
        "pending": 0,
        "running": total - succeeded - failed,
        "succeeded": succeeded,
        "failed": failed,
        "timedOut": 0,
        "aborted": 0,
        "total": total,
        "resultsWritten": succeeded,
    }


def _execution(status: str) -> dict:
    return {
        "executionArn": EXECUTION_ARN,
        "stateMachineArn": STATE_MACHINE_ARN,
        "status": status,
        "startDate": STARTED,
    }


@pytest.fixture
def boto_client():
    return boto3.client(
        "stepfunctions",
        region_name="ap-southeast-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(boto_client):
    with Stubber(boto_client) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def client(boto_client) -> StepFunctionsExecutionClient:
    return StepFunctionsExecutionClient(client=boto_client)


class TestStart:
    """Test suite for start()."""

    async def test_should_start_execution_with_json_input(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        stubber.add_response(
            "start_execution",
            {"executionArn": EXECUTION_ARN, "startDate": STARTED},
            {"stateMachineArn": STATE_MACHINE_ARN, "input": '{"releaseKey": "R001"}'},
        )

        assert await client.start(STATE_MACHINE_ARN, {"releaseKey": "R001"}) == EXECUTION_ARN

    async def test_rejected_start_should_raise_trigger_error(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        stubber.add_client_error("start_execution", service_error_code="StateMachineDoesNotExist")

        with pytest.raises(ExternalTriggerError):
            await client.start(STATE_MACHINE_ARN, {})


class TestDescribe:
    """Test suite for describe()."""

    async def test_running_execution_should_include_map_run_counts(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        # Arrange
        stubber.add_response("describe_execution", _execution("RUNNING"), {"executionArn": EXECUTION_ARN})
        stubber.add_response(
            "list_map_runs",
            {
                "mapRuns": [
                    {
                        "executionArn": EXECUTION_ARN,
                        "mapRunArn": MAP_RUN_ARN,
                        "stateMachineArn": STATE_MACHINE_ARN,
                        "startDate": STARTED,
                    }
                ]
            },
            {"executionArn": EXECUTION_ARN},
        )
        stubber.add_response(
            "describe_map_run",
            {
                "mapRunArn": MAP_RUN_ARN,
                "executionArn": EXECUTION_ARN,
                "status": "RUNNING",
                "startDate": STARTED,
                "maxConcurrency": 10,
                "toleratedFailurePercentage": 0.0,
                "toleratedFailureCount": 0,
                "itemCounts": _counts(total=8, succeeded=3, failed=1),
                "executionCounts": _counts(total=8, succeeded=3, failed=1),
            },
            {"mapRunArn": MAP_RUN_ARN},
        )

        # Act
        description = await client.describe(EXECUTION_ARN)

        # Assert
        assert description.status is ExternalStatus.IN_PROGRESS
        assert description.raw_status == "RUNNING"
        assert description.item_counts.total == 8
        assert description.item_counts.done == 4

    async def test_execution_without_map_run_should_have_no_counts(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        stubber.add_response("describe_execution", _execution("SUCCEEDED"), {"executionArn": EXECUTION_ARN})
        stubber.add_response("list_map_runs", {"mapRuns": []}, {"executionArn": ANY})

        description = await client.describe(EXECUTION_ARN)

        assert description.status is ExternalStatus.COMPLETE
        assert description.item_counts is None

    @pytest.mark.parametrize("status", ["FAILED", "TIMED_OUT", "ABORTED"])
    async def test_unsuccessful_statuses_should_be_failed(
        self, client: StepFunctionsExecutionClient, stubber: Stubber, status: str
    ) -> None:
        stubber.add_response("describe_execution", _execution(status), {"executionArn": EXECUTION_ARN})
        stubber.add_response("list_map_runs", {"mapRuns": []}, {"executionArn": ANY})

        description = await client.describe(EXECUTION_ARN)

        assert description.status is ExternalStatus.FAILED
        assert description.raw_status == status

    async def test_map_run_error_should_not_fail_describe(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        stubber.add_response("describe_execution", _execution("RUNNING"), {"executionArn": EXECUTION_ARN})
        stubber.add_client_error("list_map_runs", service_error_code="ThrottlingException")

        description = await client.describe(EXECUTION_ARN)

        assert description.status is ExternalStatus.IN_PROGRESS
        assert description.item_counts is None

    async def test_missing_execution_should_report_not_found(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        stubber.add_client_error("describe_execution", service_error_code="ExecutionDoesNotExist")

        description = await client.describe(EXECUTION_ARN)

        assert description.status is ExternalStatus.NOT_FOUND

    async def test_other_errors_should_raise_service_error(
        self, client: StepFunctionsExecutionClient, stubber: Stubber
    ) -> None:
        stubber.add_client_error("describe_execution", service_error_code="ThrottlingException")

        with pytest.raises(ExternalServiceError):
            await client.describe(EXECUTION_ARN)
