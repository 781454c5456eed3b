"""
Scripted GitHub OIDC trust setup in the pipeline account.

Ensures exactly one OIDC identity provider for the GitHub Actions issuer and
one IAM role trusting it for the configured repository, then attaches the
role's inline permissions policy.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from cdk_pipeline.builders.policy_builder import load_policy_config
from cdk_pipeline.configs.config_manager import ConfigManager
from cdk_pipeline.configs.error_handler import TrustSetupError
from cdk_pipeline.configs.pipeline_cfg import PipelineCfg
from cdk_pipeline.configs.trust import (
    BOOTSTRAP_ROLE_NAME,
    GITHUB_OIDC_THUMBPRINT,
    TrustGrant,
    provider_matches,
    trust_grant_for,
)
from cdk_pipeline.setup.idempotent import EnsureResult, ManagedResource, ensure, error_code

logger = logging.getLogger(__name__)

ROLE_DESCRIPTION = "Role for GitHub Actions to perform CDK bootstrap and deployment"
MAX_SESSION_DURATION = 3600
DEFAULT_POLICY_FILE = "github_actions_bootstrap.json"


class OidcProviderResource(ManagedResource[str]):
    """OIDC identity provider, matched by issuer URL rather than by name."""

    kind = "OIDC provider"

    def __init__(self, iam_client: Any, grant: TrustGrant) -> None:
        self.iam = iam_client
        self.grant = grant
        self.name = grant.provider_url

    def find(self) -> Optional[str]:
        providers = self.iam.list_open_id_connect_providers().get("OpenIDConnectProviderList", [])
        for provider in providers:
            if provider_matches(provider["Arn"], self.grant.provider_url):
                return provider["Arn"]
        return None

    def is_current(self, existing: str) -> bool:
        return True

    def identify(self, existing: str) -> str:
        return existing

    def create(self) -> str:
        response = self.iam.create_open_id_connect_provider(
            Url=self.grant.provider_url,
            ClientIDList=[self.grant.audience],
            ThumbprintList=[GITHUB_OIDC_THUMBPRINT],
        )
        return response["OpenIDConnectProviderArn"]

    def update(self, existing: str) -> str:
        return existing


class TrustedRoleResource(ManagedResource[dict]):
    """IAM role whose trust policy is overwritten wholesale on every run."""

    kind = "IAM role"

    def __init__(self, iam_client: Any, role_name: str, trust_policy: dict) -> None:
        self.iam = iam_client
        self.name = role_name
        self.trust_policy = json.dumps(trust_policy)

    def find(self) -> Optional[dict]:
        try:
            return self.iam.get_role(RoleName=self.name)["Role"]
        except ClientError as exc:
            if error_code(exc) == "NoSuchEntity":
                return None
            raise

    def create(self) -> str:
        response = self.iam.create_role(
            RoleName=self.name,
            AssumeRolePolicyDocument=self.trust_policy,
            Description=ROLE_DESCRIPTION,
            MaxSessionDuration=MAX_SESSION_DURATION,
        )
        return response["Role"]["Arn"]

    def update(self, existing: dict) -> str:
        self.iam.update_assume_role_policy(RoleName=self.name, PolicyDocument=self.trust_policy)
        return existing["Arn"]


@dataclass(frozen=True)
class TrustSetupResult:
    provider: EnsureResult
    role: EnsureResult
    policy_names: tuple[str, ...]

    @property
    def provider_arn(self) -> str:
        return self.provider.identifier

    @property
    def role_arn(self) -> str:
        return self.role.identifier


def setup_github_oidc(
        cfg: PipelineCfg,
        iam_client: Any,
        *,
        role_name: str = BOOTSTRAP_ROLE_NAME,
        policy_file: str = DEFAULT_POLICY_FILE,
        config_mgr: Optional[ConfigManager] = None
    ) -> TrustSetupResult:
    """
    Ensure the OIDC provider, the trusted role and its inline policy.

    Args:
        cfg: Resolved project configuration
        iam_client: boto3 IAM client for the pipeline account
        role_name: Role name, stable across reruns
        policy_file: Policy config with the role's inline policies
        config_mgr: Config manager for policy loading (built from cfg if None)

    Returns:
        Provider and role results plus the attached inline policy names

    Raises:
        TrustSetupError: On any IAM API failure
    """
    grant = trust_grant_for(cfg.repository)
    config_mgr = config_mgr or ConfigManager(cfg.vars())
    # Render policies before any write so a broken file fails the run early
    policies = load_policy_config(config_mgr, policy_file).documents()

    logger.info("Setting up GitHub OIDC for %s", cfg.repository.full_name)
    provider = ensure(OidcProviderResource(iam_client, grant), TrustSetupError)
    role = ensure(
        TrustedRoleResource(iam_client, role_name, grant.policy_document(provider.identifier)),
        TrustSetupError,
    )

    for policy_name, document in policies.items():
        logger.info("Attaching inline policy %s to %s", policy_name, role_name)
        try:
            iam_client.put_role_policy(
                RoleName=role_name,
                PolicyName=policy_name,
                PolicyDocument=json.dumps(document),
            )
        except (ClientError, BotoCoreError) as exc:
            raise TrustSetupError(f"Failed to attach policy '{policy_name}' to role '{role_name}': {exc}") from exc

    logger.info("OIDC Provider ARN: %s", provider.identifier)
    logger.info("GitHub Role ARN: %s", role.identifier)
    logger.info("Trusted subject: %s", grant.subject_pattern)
    return TrustSetupResult(provider=provider, role=role, policy_names=tuple(policies))
