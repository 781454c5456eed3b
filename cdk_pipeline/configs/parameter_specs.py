"""
Parameter Store entries derived from the project configuration.

The same list feeds the declarative ``PipelineParameters`` construct and the
scripted parameter writer.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from cdk_pipeline.configs.pipeline_cfg import (
    PARAM_ACCOUNTS,
    PARAM_GITHUB,
    PARAM_GITHUB_TOKEN,
    PipelineCfg,
)

MASK = "****"


class ParameterKind(str, Enum):
    PLAIN = "String"
    SECRET = "SecureString"


@dataclass(frozen=True)
class ParameterSpec:
    """
    One named Parameter Store entry.

    Attributes:
        path: Hierarchical parameter name
        value: Parameter value (never part of repr)
        description: Human readable description
        kind: Plain or secret
    """
    path: str
    value: str = field(repr=False)
    description: str
    kind: ParameterKind = ParameterKind.PLAIN

    @property
    def is_secret(self) -> bool:
        return self.kind is ParameterKind.SECRET

    @property
    def display_value(self) -> str:
        return MASK if self.is_secret else self.value


def parameter_specs(cfg: PipelineCfg, github_token: Optional[str] = None) -> List[ParameterSpec]:
    """
    Build the fixed list of parameters for a configuration.

    Args:
        cfg: Resolved project configuration
        github_token: GitHub access token; the token entry is omitted when None

    Returns:
        Parameter specs, accounts first, then GitHub coordinates, then the token
    """
    accounts = cfg.accounts
    repo = cfg.repository
    specs = [
        ParameterSpec(f"{PARAM_ACCOUNTS}/dev", accounts.dev_account_id, "Development Account ID"),
        ParameterSpec(f"{PARAM_ACCOUNTS}/test", accounts.test_account_id, "Test Account ID"),
        ParameterSpec(f"{PARAM_ACCOUNTS}/prod", accounts.prod_account_id, "Production Account ID"),
        ParameterSpec(f"{PARAM_ACCOUNTS}/pipeline", accounts.pipeline_account_id, "Pipeline Account ID"),
        ParameterSpec(f"{PARAM_GITHUB}/org", repo.owner, "GitHub Repository Owner"),
        ParameterSpec(f"{PARAM_GITHUB}/repo", repo.name, "GitHub Repository Name"),
        ParameterSpec(f"{PARAM_GITHUB}/branch", repo.branch, "GitHub Branch tracked by the pipeline"),
    ]
    if github_token is not None:
        specs.append(
            ParameterSpec(PARAM_GITHUB_TOKEN, github_token, "GitHub access token", ParameterKind.SECRET)
        )
    return specs
