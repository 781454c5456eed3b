"""
GitHub OIDC trust builder for the CDK pipeline project.

Declares the federated OIDC identity provider for the GitHub Actions issuer and
the single IAM role that trusts it, scoped to one repository.
"""

from __future__ import annotations
from aws_cdk import Tags
from aws_cdk import aws_iam as iam
from constructs import Construct

from cdk_pipeline.builders.policy_builder import apply_policies_to_role
from cdk_pipeline.configs.config_manager import ConfigManager
from cdk_pipeline.configs.pipeline_cfg import RepositoryCoordinate
from cdk_pipeline.configs.trust import (
    ASSUME_ROLE_ACTION,
    GITHUB_OIDC_THUMBPRINT,
    STACK_ROLE_NAME,
    trust_grant_for,
)

ROLE_TAGS = {
    "ManagedBy": "CDK",
    "Purpose": "GitHubActions-CICD",
}


class GitHubOidcTrust(Construct):
    """
    OIDC identity provider plus the GitHub Actions role trusting it.

    The role accepts web identity tokens whose audience is exactly
    ``sts.amazonaws.com`` and whose subject matches ``repo:{owner}/{name}:*``.
    """

    def __init__(
            self,
            scope: Construct,
            construct_id: str,
            *,
            repository: RepositoryCoordinate,
            config_mgr: ConfigManager,
            role_name: str = STACK_ROLE_NAME,
            policy_file: str = "github_actions_role.json"
        ) -> None:
        """
        Initialize the trust construct.

        Args:
            scope: CDK construct scope
            construct_id: Construct ID
            repository: Repository allowed to assume the role
            config_mgr: Config manager used to load the role policy file
            role_name: Physical role name, stable across deployments
            policy_file: Policy config applied to the role
        """
        super().__init__(scope, construct_id)

        self.grant = trust_grant_for(repository)

        self.provider = iam.CfnOIDCProvider(
            self,
            "Provider",
            url=self.grant.provider_url,
            client_id_list=[self.grant.audience],
            thumbprint_list=[GITHUB_OIDC_THUMBPRINT],
        )

        self.role = iam.Role(
            self,
            "Role",
            role_name=role_name,
            description=f"Assumed by GitHub Actions workflows of {repository.full_name}",
            assumed_by=iam.FederatedPrincipal(
                self.provider.attr_arn,
                conditions=self.grant.conditions,
                assume_role_action=ASSUME_ROLE_ACTION,
            ),
        )
        apply_policies_to_role(self.role, policy_file, config_mgr)

        for key, value in ROLE_TAGS.items():
            Tags.of(self.role).add(key, value)

    @property
    def provider_arn(self) -> str:
        return self.provider.attr_arn
