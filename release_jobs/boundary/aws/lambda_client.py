"""
Lambda client for beacon genotype lookups.

Invokes a function that answers whether a variant is present in one
indexed VCF. An invocation that errors or returns an unexpected payload
counts as "not found" so the specimen is excluded.

Dependencies: boto3, botocore
System role: GenotypeChecker implementation for the selection predicate
"""

import asyncio
import json
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from release_jobs.core.exceptions import ExternalServiceError
from release_jobs.core.selection_predicate import GenotypeQuery

logger = logging.getLogger(__name__)


class BeaconLambdaClient:
    """Genotype lookups through a Lambda function."""

    def __init__(self, function_name: str, region: str = "ap-southeast-2", client=None) -> None:
        """
        Initialize Lambda client.

        Args:
            function_name: Name or ARN of the beacon function
            region: AWS region of the function
            client: Preconfigured boto3 Lambda client (tests)
        """
        self._function_name = function_name
        self._client = client or boto3.client("lambda", region_name=region)

    async def has_variant(self, query: GenotypeQuery) -> bool:
        """
        Ask the beacon function whether the variant is present.

        Args:
            query: Variant and VCF location

        Returns:
            bool: True only on a successful invocation answering found=true

        Raises:
            ExternalServiceError: If Lambda could not be reached at all
        """
        try:
            response = await asyncio.to_thread(
                self._client.invoke,
                FunctionName=self._function_name,
                InvocationType="RequestResponse",
                Payload=json.dumps(query.to_payload()).encode("utf-8"),
            )
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(
                f"Beacon lookup failed: {e}",
                operation="lambda_invoke",
                details={"function_name": self._function_name},
            ) from e

        if response.get("StatusCode") != 200 or response.get("FunctionError"):
            logger.warning(
                f"{__name__}:has_variant - Beacon function error {response.get('FunctionError')}",
                extra={"vcf_key": query.vcf_key},
            )
            return False

        payload = response.get("Payload")
        body = payload.read() if payload is not None else b""
        try:
            result = json.loads(body or b"{}")
        except json.JSONDecodeError:
            logger.warning(f"{__name__}:has_variant - Beacon function returned non-JSON payload")
            return False
        return bool(isinstance(result, dict) and result.get("found"))
