"""
GitHub Actions OIDC trust definitions.

Fixed issuer constants and the trust grant derived from a repository
coordinate. Both the declarative stack and the scripted setup render their
trust policies from here so the two paths cannot drift apart.
"""

from __future__ import annotations
from dataclasses import dataclass

from cdk_pipeline.configs.error_handler import ErrorHandler, ValidationError
from cdk_pipeline.configs.pipeline_cfg import RepositoryCoordinate

GITHUB_OIDC_URL = "https://token.actions.githubusercontent.com"
GITHUB_OIDC_HOST = GITHUB_OIDC_URL.removeprefix("https://")
STS_AUDIENCE = "sts.amazonaws.com"

# Must be updated when GitHub rotates the issuer certificate chain
GITHUB_OIDC_THUMBPRINT = "6938fd4d98bab03faadb97b34396831e3780aea1"

ASSUME_ROLE_ACTION = "sts:AssumeRoleWithWebIdentity"

# Role used by the declarative stack and by the scripted bootstrap path
STACK_ROLE_NAME = "GitHubActionsRole"
BOOTSTRAP_ROLE_NAME = "GitHubActions-CDKBootstrap-Role"


@dataclass(frozen=True)
class TrustGrant:
    """
    Federated trust granted to one GitHub repository.

    Attributes:
        subject_pattern: StringLike pattern matched against the token subject
        provider_url: OIDC issuer URL
        audience: Expected token audience
    """
    subject_pattern: str
    provider_url: str = GITHUB_OIDC_URL
    audience: str = STS_AUDIENCE

    @property
    def conditions(self) -> dict[str, dict[str, str]]:
        """IAM condition block: exact audience, glob subject."""
        return {
            "StringEquals": {f"{GITHUB_OIDC_HOST}:aud": self.audience},
            "StringLike": {f"{GITHUB_OIDC_HOST}:sub": self.subject_pattern},
        }

    def policy_document(self, provider_arn: str) -> dict:
        """
        Render the assume-role policy document for a provider.

        Args:
            provider_arn: ARN of the OIDC identity provider

        Returns:
            IAM policy document as a dict
        """
        return {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Federated": provider_arn},
                    "Action": ASSUME_ROLE_ACTION,
                    "Condition": self.conditions,
                }
            ],
        }


def trust_grant_for(repository: RepositoryCoordinate) -> TrustGrant:
    """
    Derive the trust grant for a repository.

    Any branch or ref of the repository matches the subject pattern.

    Raises:
        ValidationError: If owner or name is empty
    """
    ErrorHandler.validate_string_not_empty(repository.owner, "owner", "Repository", ValidationError)
    ErrorHandler.validate_string_not_empty(repository.name, "name", "Repository", ValidationError)
    return TrustGrant(subject_pattern=f"repo:{repository.owner}/{repository.name}:*")


def provider_matches(provider_arn: str, url: str = GITHUB_OIDC_URL) -> bool:
    """True when an OIDC provider ARN was created for ``url``."""
    host = url.removeprefix("https://").rstrip("/")
    return provider_arn.endswith(f":oidc-provider/{host}")
