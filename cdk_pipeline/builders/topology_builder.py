"""
Pipeline topology builder for the CDK pipeline project.

This module plans the promotion pipeline as typed, immutable records before any
CDK construct is created. The plan is validated as a whole so that an invalid
request never yields a partially materialized pipeline, and identical inputs
always produce an identical plan.

Stage order is fixed: Source, Build, Dev, Test (approval gated), Prod
(approval gated). Each approval gate belongs to its own stage and is never
satisfied by approving another stage.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from cdk_pipeline.configs.error_handler import (
    ErrorHandler,
    TopologyError,
    ValidationError,
)
from cdk_pipeline.configs.pipeline_cfg import (
    ACCOUNT_ID_PATTERN,
    AccountSet,
    RepositoryCoordinate,
)

logger = logging.getLogger(__name__)

SOURCE_STAGE = "Source"
BUILD_STAGE = "Build"
DEV_STAGE = "Dev"
TEST_STAGE = "Test"
PROD_STAGE = "Prod"

STAGE_ORDER: Tuple[str, ...] = (SOURCE_STAGE, BUILD_STAGE, DEV_STAGE, TEST_STAGE, PROD_STAGE)

DEFAULT_SYNTH_COMMANDS: Tuple[str, ...] = (
    "pip install -e .",
    "npm install -g aws-cdk",
    "cdk synth -c useSSMConfig=true",
)


class ActionCategory(str, Enum):
    SOURCE = "Source"
    BUILD = "Build"
    APPROVAL = "Approval"
    DEPLOY = "Deploy"


@dataclass(frozen=True)
class Action:
    """
    Leaf unit of work within a stage.

    Attributes:
        name: Action name, unique within its stage
        category: Source, Build, Approval or Deploy
        provider: Service executing the action
        config: Provider specific settings
    """
    name: str
    category: ActionCategory
    provider: str
    config: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineStage:
    """
    One stage of the promotion pipeline.

    Attributes:
        name: Stage name
        actions: Ordered actions
        target_account_id: Account deployed to (None for Source and Build)
        region: Region deployed to (None for Source and Build)
        requires_approval: Whether a manual approval gates the deployment
    """
    name: str
    actions: Tuple[Action, ...]
    target_account_id: Optional[str] = None
    region: Optional[str] = None
    requires_approval: bool = False

    @property
    def approval_actions(self) -> Tuple[Action, ...]:
        return tuple(a for a in self.actions if a.category is ActionCategory.APPROVAL)

    @property
    def deploy_actions(self) -> Tuple[Action, ...]:
        return tuple(a for a in self.actions if a.category is ActionCategory.DEPLOY)

    @property
    def is_deployment(self) -> bool:
        return bool(self.deploy_actions)


@dataclass(frozen=True)
class PipelineTopology:
    """
    Validated, immutable description of the whole pipeline.

    Attributes:
        pipeline_name: Deterministic pipeline name, ``{repo}-pipeline``
        repository: Repository the pipeline builds from
        accounts: Accounts the pipeline promotes through
        stages: Stages in execution order
    """
    pipeline_name: str
    repository: RepositoryCoordinate
    accounts: AccountSet
    stages: Tuple[PipelineStage, ...]

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self.stages]

    @property
    def deployment_stages(self) -> List[PipelineStage]:
        return [s for s in self.stages if s.is_deployment]

    def stage(self, name: str) -> PipelineStage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(f"Pipeline '{self.pipeline_name}' has no stage '{name}'")


def pipeline_name_for(repository: RepositoryCoordinate) -> str:
    return f"{repository.name}-pipeline"


def _validate_inputs(accounts: AccountSet, repository: RepositoryCoordinate) -> None:
    """
    Validate the inputs of a topology request.

    Raises:
        ValidationError: If a repository field is empty or an account ID is malformed
    """
    for field_name in ("owner", "name", "branch"):
        ErrorHandler.validate_string_not_empty(
            getattr(repository, field_name), field_name, "Repository", ValidationError
        )
    account_ids = {
        "pipeline_account_id": accounts.pipeline_account_id,
        "dev_account_id": accounts.dev_account_id,
        "test_account_id": accounts.test_account_id,
        "prod_account_id": accounts.prod_account_id,
    }
    for field_name, value in account_ids.items():
        ErrorHandler.validate_pattern(
            value, ACCOUNT_ID_PATTERN, field_name, "AccountSet",
            description="a 12-digit AWS account ID", error=ValidationError,
        )
    ErrorHandler.validate_distinct(account_ids, "AccountSet", ValidationError)
    ErrorHandler.validate_string_not_empty(accounts.region, "region", "AccountSet", ValidationError)


def _deployment_stage(
        name: str,
        account_id: str,
        region: str,
        requires_approval: bool
    ) -> PipelineStage:
    actions: List[Action] = []
    if requires_approval:
        actions.append(Action(f"Approve{name}", ActionCategory.APPROVAL, "Manual"))
    actions.append(
        Action(
            "Deploy",
            ActionCategory.DEPLOY,
            "CloudFormation",
            {"account": account_id, "region": region},
        )
    )
    return PipelineStage(
        name=name,
        actions=tuple(actions),
        target_account_id=account_id,
        region=region,
        requires_approval=requires_approval,
    )


def build_topology(
        accounts: AccountSet,
        repository: RepositoryCoordinate,
        synth_commands: Sequence[str] = DEFAULT_SYNTH_COMMANDS
    ) -> PipelineTopology:
    """
    Plan the promotion pipeline for a repository across accounts.

    Args:
        accounts: Pipeline and target accounts
        repository: GitHub repository coordinates
        synth_commands: Commands executed by the Build stage

    Returns:
        Validated pipeline topology

    Raises:
        ValidationError: If inputs are invalid; raised before any stage is built
        TopologyError: If the assembled stages violate ordering rules
    """
    _validate_inputs(accounts, repository)

    source = PipelineStage(
        name=SOURCE_STAGE,
        actions=(
            Action(
                "GitHub",
                ActionCategory.SOURCE,
                "GitHub",
                {"owner": repository.owner, "repo": repository.name, "branch": repository.branch},
            ),
        ),
    )
    build = PipelineStage(
        name=BUILD_STAGE,
        actions=(Action("Synth", ActionCategory.BUILD, "CodeBuild", {"commands": tuple(synth_commands)}),),
    )
    stages = (
        source,
        build,
        _deployment_stage(DEV_STAGE, accounts.dev_account_id, accounts.region, False),
        _deployment_stage(TEST_STAGE, accounts.test_account_id, accounts.region, True),
        _deployment_stage(PROD_STAGE, accounts.prod_account_id, accounts.region, True),
    )

    topology = PipelineTopology(
        pipeline_name=pipeline_name_for(repository),
        repository=repository,
        accounts=accounts,
        stages=stages,
    )
    validate_topology(topology)
    logger.debug("Planned %s: %s", topology.pipeline_name, " -> ".join(topology.stage_names))
    return topology


def validate_topology(topology: PipelineTopology) -> None:
    """
    Check the ordering rules of a topology.

    Raises:
        TopologyError: If stages are missing, duplicated or out of order, or an
            approval-gated stage does not have exactly one approval action
            preceding exactly one deployment action
    """
    names = topology.stage_names
    if len(set(names)) != len(names):
        raise TopologyError(f"Pipeline '{topology.pipeline_name}' has duplicate stage names: {names}")
    if tuple(names) != STAGE_ORDER:
        raise TopologyError(
            f"Pipeline '{topology.pipeline_name}' stages must be {list(STAGE_ORDER)}, got {names}"
        )

    first = topology.stages[0]
    if [a.category for a in first.actions] != [ActionCategory.SOURCE]:
        raise TopologyError(f"Stage '{first.name}' must hold exactly one Source action")

    for stage in topology.deployment_stages:
        categories = [a.category for a in stage.actions]
        if stage.requires_approval:
            if categories != [ActionCategory.APPROVAL, ActionCategory.DEPLOY]:
                raise TopologyError(
                    f"Stage '{stage.name}' must hold one Approval action followed by one Deploy action, "
                    f"got {[c.value for c in categories]}"
                )
        elif ActionCategory.APPROVAL in categories:
            raise TopologyError(f"Stage '{stage.name}' is not approval gated but holds an Approval action")
