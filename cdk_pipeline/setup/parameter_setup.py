"""
Scripted Parameter Store writer.

Creates or overwrites each configuration parameter in the pipeline account.
Writes stop at the first failure. Secret values never reach the log.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from cdk_pipeline.configs.error_handler import ParameterWriteError
from cdk_pipeline.configs.parameter_specs import ParameterSpec
from cdk_pipeline.setup.idempotent import EnsureResult, ManagedResource, ensure

logger = logging.getLogger(__name__)

DEFAULT_TAGS = {
    "Project": "CDKPipeline",
    "ManagedBy": "GitHubActions",
}


class ParameterResource(ManagedResource[dict]):
    """One SSM parameter, probed by exact name."""

    kind = "parameter"

    def __init__(self, ssm_client: Any, spec: ParameterSpec, tags: Dict[str, str]) -> None:
        self.ssm = ssm_client
        self.spec = spec
        self.tags = tags
        self.name = spec.path

    def find(self) -> Optional[dict]:
        response = self.ssm.describe_parameters(
            ParameterFilters=[{"Key": "Name", "Option": "Equals", "Values": [self.spec.path]}]
        )
        for param in response.get("Parameters", []):
            if param.get("Name") == self.spec.path:
                return param
        return None

    def create(self) -> str:
        logger.debug("Writing %s = %s", self.spec.path, self.spec.display_value)
        self.ssm.put_parameter(
            Name=self.spec.path,
            Value=self.spec.value,
            Type=self.spec.kind.value,
            Description=self.spec.description,
            Tags=[{"Key": k, "Value": v} for k, v in self.tags.items()],
        )
        return self.spec.path

    def update(self, existing: dict) -> str:
        logger.debug("Overwriting %s = %s", self.spec.path, self.spec.display_value)
        self.ssm.put_parameter(
            Name=self.spec.path,
            Value=self.spec.value,
            Type=self.spec.kind.value,
            Overwrite=True,
        )
        return self.spec.path


def write_parameters(
        specs: Iterable[ParameterSpec],
        ssm_client: Any,
        tags: Optional[Dict[str, str]] = None
    ) -> List[EnsureResult]:
    """
    Create or update every parameter, failing fast.

    Args:
        specs: Parameters to write
        ssm_client: boto3 SSM client for the pipeline account
        tags: Tags applied to newly created parameters

    Returns:
        One result per written parameter, in input order

    Raises:
        ParameterWriteError: On the first failed write; later parameters are not attempted
    """
    tags = DEFAULT_TAGS if tags is None else tags
    results = []
    for spec in specs:
        results.append(ensure(ParameterResource(ssm_client, spec, tags), ParameterWriteError))
        logger.info("Parameter %s: %s", spec.path, results[-1].outcome.value)
    return results
