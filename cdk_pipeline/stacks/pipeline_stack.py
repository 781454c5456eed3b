"""
CI/CD pipeline stack for the CDK pipeline project.

This stack declares the GitHub OIDC trust, the Parameter Store entries that
describe the pipeline, and a CodePipeline promoting the application from the
pipeline account through Dev, Test and Prod accounts, with independent manual
approvals before Test and Prod.
"""

from __future__ import annotations
import logging

from aws_cdk import (
    Environment,
    SecretValue,
    Stack,
    Stage,
)
from aws_cdk import (
    aws_iam as iam,
    pipelines as pipelines,
)
from constructs import Construct

from cdk_pipeline.builders.oidc_builder import GitHubOidcTrust
from cdk_pipeline.builders.output_builder import publish_output
from cdk_pipeline.builders.parameter_builder import PipelineParameters
from cdk_pipeline.builders.topology_builder import (
    ActionCategory,
    PipelineStage,
    PipelineTopology,
    build_topology,
)
from cdk_pipeline.configs.config_manager import ConfigManager
from cdk_pipeline.configs.parameter_specs import parameter_specs
from cdk_pipeline.configs.pipeline_cfg import (
    DEFAULT_TOKEN_SECRET,
    PARAM_ROOT,
    AccountSet,
    PipelineCfg,
    RepositoryCoordinate,
)
from cdk_pipeline.stacks.workload_stack import WorkloadStack

logger = logging.getLogger(__name__)

OIDC_EXPORT_NAME = "GitHubOIDCProviderArn"

PARAMETER_TAGS = {"ManagedBy": "CDK"}


class DeploymentStage(Stage):
    """
    Application stage deployed into one target account.

    Contains the workload stack for the environment named after the stage.
    """

    def __init__(
        self, scope: Construct, construct_id: str, env_name: str, app_env: Environment, **kwargs
    ) -> None:
        """
        Initialize the deployment stage.

        Args:
            scope: CDK construct scope
            construct_id: Construct ID (also the pipeline stage name)
            env_name: Environment name
            app_env: Target account and region
            **kwargs: Additional stage properties
        """
        super().__init__(scope, construct_id, env=app_env, **kwargs)
        WorkloadStack(self, f"WorkloadStack-{env_name}", env_name=env_name)


class PipelineStack(Stack):
    """
    Main pipeline stack.

    The stage plan is computed and validated before the stack itself is
    created, so invalid repository coordinates never leave a partially built
    stack in the app.

    Attributes:
        topology: The validated stage plan
        trust: OIDC provider and GitHub Actions role
        parameters: Parameter Store entries
        pipeline: The CDK pipeline
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        repository: RepositoryCoordinate,
        accounts: AccountSet,
        github_token_secret: str = DEFAULT_TOKEN_SECRET,
        **kwargs,
    ) -> None:
        """
        Initialize the pipeline stack.

        Args:
            scope: CDK construct scope
            construct_id: Construct ID
            repository: GitHub repository the pipeline builds from
            accounts: Pipeline and target accounts
            github_token_secret: Secrets Manager secret holding the GitHub token
            **kwargs: Additional stack properties
        """
        topology = build_topology(accounts, repository)

        kwargs.setdefault(
            "env", Environment(account=accounts.pipeline_account_id, region=accounts.region)
        )
        super().__init__(scope, construct_id, **kwargs)

        self.topology: PipelineTopology = topology
        cfg = PipelineCfg(accounts=accounts, repository=repository, github_token_secret=github_token_secret)
        config_mgr = ConfigManager(cfg.vars(self))

        # Identity/trust provider
        self.trust = GitHubOidcTrust(self, "GitHubOidc", repository=repository, config_mgr=config_mgr)

        # Parameter Store entries; the token value is set by the setup tooling
        self.parameters = PipelineParameters(
            self,
            "Parameters",
            specs=parameter_specs(cfg, github_token=""),
            tags=PARAMETER_TAGS,
        )

        # Pipeline topology
        self.pipeline = self._build_pipeline(topology, github_token_secret)
        self.pipeline.build_pipeline()

        # Outputs
        publish_output(
            self,
            "GitHubOIDCProviderArn",
            self.trust.provider_arn,
            "ARN of the GitHub OIDC Provider",
            export_name=OIDC_EXPORT_NAME,
        )
        publish_output(self, "GitHubActionsRoleArn", self.trust.role.role_arn, "ARN of the GitHub Actions role")
        publish_output(self, "PipelineName", topology.pipeline_name, "Name of the deployment pipeline")
        publish_output(
            self, "PipelineArn", self.pipeline.pipeline.pipeline_arn, "ARN of the deployment pipeline"
        )

        logger.info("Synthesized %s with stages %s", topology.pipeline_name, topology.stage_names)

    @property
    def pipeline_name(self) -> str:
        return self.topology.pipeline_name

    @property
    def oidc_provider_arn(self) -> str:
        return self.trust.provider_arn

    def _build_pipeline(self, topology: PipelineTopology, github_token_secret: str) -> pipelines.CodePipeline:
        source_action = topology.stages[0].actions[0]
        build_action = topology.stages[1].actions[0]
        source_cfg = source_action.config

        source = pipelines.CodePipelineSource.git_hub(
            f"{source_cfg['owner']}/{source_cfg['repo']}",
            source_cfg["branch"],
            authentication=SecretValue.secrets_manager(github_token_secret),
        )

        # synth resolves its configuration from Parameter Store
        synth = pipelines.CodeBuildStep(
            build_action.name,
            input=source,
            commands=list(build_action.config["commands"]),
            env={"AWS_REGION": topology.accounts.region},
            role_policy_statements=[
                iam.PolicyStatement(
                    actions=["ssm:GetParameter"],
                    resources=[
                        self.format_arn(service="ssm", resource="parameter", resource_name=f"{PARAM_ROOT.lstrip('/')}/*")
                    ],
                )
            ],
        )

        pipeline = pipelines.CodePipeline(
            self,
            "Pipeline",
            pipeline_name=topology.pipeline_name,
            synth=synth,
            cross_account_keys=True,
            self_mutation=False,
            use_change_sets=False,
        )

        for stage in topology.deployment_stages:
            self._add_deployment_stage(pipeline, stage)

        return pipeline

    def _add_deployment_stage(self, pipeline: pipelines.CodePipeline, stage: PipelineStage) -> None:
        app_stage = DeploymentStage(
            self,
            stage.name,
            env_name=stage.name.lower(),
            app_env=Environment(account=stage.target_account_id, region=stage.region),
        )

        pre = [
            pipelines.ManualApprovalStep(
                action.name,
                comment=f"Approve deployment of {self.topology.pipeline_name} to {stage.name} ({stage.target_account_id})",
            )
            for action in stage.actions
            if action.category is ActionCategory.APPROVAL
        ]
        if pre:
            pipeline.add_stage(app_stage, pre=pre)
        else:
            pipeline.add_stage(app_stage)
