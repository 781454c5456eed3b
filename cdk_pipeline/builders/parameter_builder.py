"""
Parameter Store builder for the CDK pipeline project.

Declares one SSM parameter per ``ParameterSpec``. Plain entries become
``StringParameter`` resources; the secret token entry is declared with the
``SecureString`` type and a placeholder value that the setup tooling
overwrites with the real token.
"""

from __future__ import annotations
from typing import Dict, List

from aws_cdk import Tags
from aws_cdk import aws_ssm as ssm
from constructs import Construct

from cdk_pipeline.configs.parameter_specs import ParameterSpec

TOKEN_PLACEHOLDER = "set-by-cdk-pipeline-setup"


def _logical_id(path: str) -> str:
    # "/cdk/accounts/dev" -> "CdkAccountsDev"
    return "".join(part.capitalize() for part in path.strip("/").split("/"))


class PipelineParameters(Construct):
    """Named Parameter Store entries describing the pipeline configuration."""

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            specs: List[ParameterSpec],
            tags: Dict[str, str] | None = None
        ) -> None:
        super().__init__(scope, construct_id)

        self.parameters: Dict[str, Construct] = {}
        for spec in specs:
            if spec.is_secret:
                param = ssm.CfnParameter(
                    self,
                    _logical_id(spec.path),
                    name=spec.path,
                    type=spec.kind.value,
                    value=TOKEN_PLACEHOLDER,
                    description=spec.description,
                )
            else:
                param = ssm.StringParameter(
                    self,
                    _logical_id(spec.path),
                    parameter_name=spec.path,
                    string_value=spec.value,
                    description=spec.description,
                )
            self.parameters[spec.path] = param

        for key, value in (tags or {}).items():
            Tags.of(self).add(key, value)
