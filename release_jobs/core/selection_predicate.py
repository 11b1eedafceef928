"""
Specimen selection predicates.

A selection predicate decides whether one specimen of a release's datasets
is shared under the release's coded application. The default predicate
applies the beacon-style query stored on the release: simple filters on
individuals (sex at birth) and an optional genotype lookup against the
specimen's VCF.

Dependencies: dataclasses, typing (stdlib)
System role: Pluggable rule evaluated by the selection job handler
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urlparse

if TYPE_CHECKING:
    from release_jobs.boundary.db.models.dataset_model import (
        DatasetCaseModel,
        DatasetPatientModel,
        DatasetSpecimenModel,
    )

logger = logging.getLogger(__name__)

SEX_FILTER_IDS = frozenset({"sex", "SNOMED:1515311000168102"})


@dataclass(frozen=True)
class SpecimenArtifacts:
    """Artifact locations resolved for a specimen before it is evaluated."""

    vcf_url: str | None = None
    vcf_index_url: str | None = None

    @property
    def has_indexed_vcf(self) -> bool:
        return bool(self.vcf_url and self.vcf_index_url)


@dataclass(frozen=True)
class GenotypeQuery:
    """A single-variant lookup against one indexed VCF held in S3."""

    vcf_bucket: str
    vcf_key: str
    vcf_index_bucket: str
    vcf_index_key: str
    reference_name: str
    start: Any
    reference_bases: str
    alternate_bases: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "vcf_bucket": self.vcf_bucket,
            "vcf_key": self.vcf_key,
            "vcf_index_bucket": self.vcf_index_bucket,
            "vcf_index_key": self.vcf_index_key,
            "reference_name": self.reference_name,
            "start": self.start,
            "reference_bases": self.reference_bases,
            "alternate_bases": self.alternate_bases,
        }


class GenotypeChecker(Protocol):
    """Answers whether a variant is present in a specimen's VCF."""

    async def has_variant(self, query: GenotypeQuery) -> bool: ...


class SelectionPredicate(Protocol):
    """Decides whether a specimen is included in a release."""

    async def is_selectable(
        self,
        application_context: dict[str, Any],
        case: "DatasetCaseModel",
        patient: "DatasetPatientModel",
        specimen: "DatasetSpecimenModel",
        artifacts: SpecimenArtifacts,
    ) -> bool: ...


def split_s3_url(url: str) -> tuple[str, str]:
    """
    Split an s3://bucket/key URL.

    Raises:
        ValueError: If the URL is not an S3 URL with a bucket and key
    """
    parsed = urlparse(url)
    key = parsed.path.lstrip("/")
    if parsed.scheme != "s3" or not parsed.netloc or not key:
        raise ValueError(f"Not an S3 object URL: {url}")
    return parsed.netloc, key


class BeaconSelectionPredicate:
    """
    Selection predicate driven by the beacon query in the coded application.

    The application context may hold::

        {"beaconQuery": {
            "filters": [{"scope": "individuals", "id": "sex", "operator": "=", "value": "female"}],
            "requestParameters": {"g_variant": {"referenceName": "chr1", "start": 1000,
                                                "referenceBases": "A", "alternateBases": "T"}}}}

    Specimens without an indexed VCF, or releases without a beacon query,
    are always selectable. A failed genotype lookup excludes the specimen.
    """

    def __init__(self, genotype_checker: GenotypeChecker | None = None) -> None:
        """
        Args:
            genotype_checker: Variant lookup service; genotype restrictions are
                ignored when not configured
        """
        self._genotype_checker = genotype_checker

    async def is_selectable(
        self,
        application_context: dict[str, Any],
        case: "DatasetCaseModel",
        patient: "DatasetPatientModel",
        specimen: "DatasetSpecimenModel",
        artifacts: SpecimenArtifacts,
    ) -> bool:
        beacon_query = application_context.get("beaconQuery")
        if not isinstance(beacon_query, dict) or not artifacts.has_indexed_vcf:
            return True

        filters = beacon_query.get("filters")
        if isinstance(filters, list) and not self._filters_allow(filters, patient):
            return False

        request_parameters = beacon_query.get("requestParameters")
        if isinstance(request_parameters, dict) and isinstance(
            request_parameters.get("g_variant"), dict
        ):
            return await self._genotype_allows(request_parameters["g_variant"], artifacts, specimen)

        return True

    @staticmethod
    def _filters_allow(filters: list[Any], patient: "DatasetPatientModel") -> bool:
        for item in filters:
            if not isinstance(item, dict) or item.get("scope") != "individuals":
                continue
            if item.get("id") not in SEX_FILTER_IDS:
                continue
            operator = item.get("operator")
            if operator == "=":
                if item.get("value") != patient.sex_at_birth:
                    return False
            elif operator == "!=":
                if item.get("value") == patient.sex_at_birth:
                    return False
            else:
                # unknown operators fail closed
                return False
        return True

    async def _genotype_allows(
        self,
        g_variant: dict[str, Any],
        artifacts: SpecimenArtifacts,
        specimen: "DatasetSpecimenModel",
    ) -> bool:
        if self._genotype_checker is None:
            logger.debug(
                "%s:_genotype_allows - no genotype service configured, skipping variant check",
                __name__,
            )
            return True

        try:
            vcf_bucket, vcf_key = split_s3_url(artifacts.vcf_url)
            index_bucket, index_key = split_s3_url(artifacts.vcf_index_url)
        except ValueError as e:
            logger.warning(
                "%s:_genotype_allows - specimen %s excluded, VCF not queryable: %s",
                __name__,
                specimen.id,
                e,
            )
            return False

        query = GenotypeQuery(
            vcf_bucket=vcf_bucket,
            vcf_key=vcf_key,
            vcf_index_bucket=index_bucket,
            vcf_index_key=index_key,
            reference_name=g_variant.get("referenceName", ""),
            start=g_variant.get("start"),
            reference_bases=g_variant.get("referenceBases", ""),
            alternate_bases=g_variant.get("alternateBases", ""),
        )
        found = await self._genotype_checker.has_variant(query)
        logger.debug(
            "%s:_genotype_allows - variant lookup for specimen %s returned %s",
            __name__,
            specimen.id,
            found,
        )
        return found
