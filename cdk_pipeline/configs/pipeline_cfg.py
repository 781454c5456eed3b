"""
Project configuration management for the CDK pipeline project.

This module provides the configuration classes and the resolver that gathers
account IDs, GitHub repository coordinates and region from CDK context,
environment variables or SSM Parameter Store, and produces one immutable,
validated configuration object consumed by everything else.
"""

from __future__ import annotations
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Mapping, Optional, Union

import boto3
from aws_cdk import App, Stack
from botocore.exceptions import BotoCoreError, ClientError

from cdk_pipeline.configs.error_handler import ConfigurationError, ErrorHandler

ACCOUNT_ID_PATTERN = re.compile(r"^[0-9]{12}$")

DEFAULT_REGION = "us-east-1"
DEFAULT_BRANCH = "main"
DEFAULT_TOKEN_SECRET = "github-token"

# Toolkit qualifier shared by `cdk bootstrap` and the stack synthesizers
DEFAULT_QUALIFIER = "myorg"
QUALIFIER_CONTEXT_KEY = "@aws-cdk/core:bootstrapQualifier"

# Parameter Store layout shared by the resolver, the stack and the setup writer
PARAM_ROOT = "/cdk"
PARAM_ACCOUNTS = f"{PARAM_ROOT}/accounts"
PARAM_GITHUB = f"{PARAM_ROOT}/github"
PARAM_GITHUB_TOKEN = f"{PARAM_GITHUB}/token"

SsmReader = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class AccountSet:
    """
    AWS accounts taking part in the promotion pipeline.

    Attributes:
        pipeline_account_id: Account hosting the pipeline itself
        dev_account_id: Development target account
        test_account_id: Test target account
        prod_account_id: Production target account
        region: Region shared by all accounts
    """
    pipeline_account_id: str
    dev_account_id: str
    test_account_id: str
    prod_account_id: str
    region: str

    def as_dict(self) -> dict[str, str]:
        return {
            "pipeline": self.pipeline_account_id,
            "dev": self.dev_account_id,
            "test": self.test_account_id,
            "prod": self.prod_account_id,
        }


@dataclass(frozen=True)
class RepositoryCoordinate:
    """
    GitHub repository the pipeline builds from.

    Attributes:
        owner: GitHub organization or user
        name: Repository name
        branch: Branch the pipeline tracks
    """
    owner: str
    name: str
    branch: str = DEFAULT_BRANCH

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class PipelineCfg:
    """
    Main project configuration container.

    Attributes:
        accounts: Accounts and region
        repository: GitHub repository coordinates
        github_token_secret: Secrets Manager secret holding the GitHub token
    """
    accounts: AccountSet
    repository: RepositoryCoordinate
    github_token_secret: str = DEFAULT_TOKEN_SECRET

    def vars(
            self,
            stack: Stack | None = None,
            extra: dict[str, str] | None = None
        ) -> dict[str, str]:
        """
        Generate placeholder variables for JSON configuration expansion.

        Args:
            stack: Optional CDK stack; adds stack-resolved AccountId and Partition
            extra: Additional variables to include

        Returns:
            Dictionary of variable name to value mappings
        """
        base = {
            "PipelineAccountId": self.accounts.pipeline_account_id,
            "DevAccountId": self.accounts.dev_account_id,
            "TestAccountId": self.accounts.test_account_id,
            "ProdAccountId": self.accounts.prod_account_id,
            "Region": self.accounts.region,
            "GithubOwner": self.repository.owner,
            "GithubRepo": self.repository.name,
            "Branch": self.repository.branch,
            "AccountId": self.accounts.pipeline_account_id,
            "Partition": "aws",
        }
        if stack is not None:
            base["AccountId"] = stack.account or self.accounts.pipeline_account_id
            base["Partition"] = stack.partition
        if extra:
            base.update({k: str(v) for k, v in extra.items()})
        return base


# field -> (flat context key, environment variables, ssm path)
_FIELDS: dict[str, tuple[str, tuple[str, ...], Optional[str]]] = {
    "github_owner": ("githubOrg", ("GITHUB_ORG", "GITHUB_OWNER"), f"{PARAM_GITHUB}/org"),
    "github_repo": ("githubRepo", ("GITHUB_REPO",), f"{PARAM_GITHUB}/repo"),
    "github_branch": ("githubBranch", ("GITHUB_BRANCH",), f"{PARAM_GITHUB}/branch"),
    "pipeline_account_id": ("pipelineAccount", ("PIPELINE_ACCOUNT_ID",), f"{PARAM_ACCOUNTS}/pipeline"),
    "dev_account_id": ("devAccount", ("DEV_ACCOUNT_ID",), f"{PARAM_ACCOUNTS}/dev"),
    "test_account_id": ("testAccount", ("TEST_ACCOUNT_ID",), f"{PARAM_ACCOUNTS}/test"),
    "prod_account_id": ("prodAccount", ("PROD_ACCOUNT_ID",), f"{PARAM_ACCOUNTS}/prod"),
    "region": ("region", ("AWS_REGION", "CDK_DEFAULT_REGION"), None),
    "github_token_secret": ("githubTokenSecret", ("GITHUB_TOKEN_SECRET",), None),
}

_DEFAULTS = {
    "github_branch": DEFAULT_BRANCH,
    "region": DEFAULT_REGION,
    "github_token_secret": DEFAULT_TOKEN_SECRET,
}

_ACCOUNT_FIELDS = ("pipeline_account_id", "dev_account_id", "test_account_id", "prod_account_id")

CONTEXT_KEYS = tuple(ctx_key for ctx_key, _, _ in _FIELDS.values()) + ("useSSMConfig",)


def _truthy(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() == "true"


def ssm_reader(region: str, session=None) -> SsmReader:
    """
    Build a reader that fetches plain parameter values from SSM.

    Args:
        region: Region of the parameter store
        session: Optional boto3 session carrying explicit credentials

    Returns:
        Callable mapping a parameter path to its value (None when absent)

    Raises:
        ConfigurationError: From the reader, when Parameter Store cannot be read
    """
    client = (session or boto3.session.Session()).client("ssm", region_name=region)

    def _read(name: str) -> Optional[str]:
        try:
            return client.get_parameter(Name=name)["Parameter"]["Value"]
        except (ClientError, BotoCoreError) as exc:
            if isinstance(exc, ClientError) and exc.response.get("Error", {}).get("Code") == "ParameterNotFound":
                return None
            raise ConfigurationError(f"Failed to read parameter '{name}' from Parameter Store: {exc}") from exc

    return _read


def resolve_cfg(
        context: Mapping[str, object],
        environ: Mapping[str, str],
        reader: Optional[SsmReader] = None
    ) -> PipelineCfg:
    """
    Resolve and validate the project configuration.

    Resolution order per field is: flat context key, the ``pipeline`` block of
    ``cdk.json``, environment variables, then defaults. When ``useSSMConfig``
    is true the repository coordinates and account IDs are read from
    Parameter Store instead.

    Args:
        context: CDK context values (flat keys plus an optional ``pipeline`` dict)
        environ: Environment variables
        reader: Parameter Store reader, required when ``useSSMConfig`` is set

    Returns:
        Validated project configuration

    Raises:
        ConfigurationError: If a field is missing or malformed
    """
    block = context.get("pipeline") or {}
    ErrorHandler.validate_type(block, dict, "pipeline", "cdk.json context")

    use_ssm = _truthy(context.get("useSSMConfig") or block.get("useSSMConfig"))
    if use_ssm and reader is None:
        raise ConfigurationError("useSSMConfig is set but no Parameter Store reader is available")

    values: dict[str, str] = {}
    for field, (ctx_key, env_keys, ssm_path) in _FIELDS.items():
        value: object = None
        if use_ssm and ssm_path:
            value = reader(ssm_path)
            if not value:
                raise ConfigurationError(f"Parameter '{ssm_path}' not found in Parameter Store ({field})")
        if value in (None, ""):
            value = context.get(ctx_key)
        if value in (None, ""):
            value = block.get(ctx_key)
        for env_key in env_keys:
            if value not in (None, ""):
                break
            value = environ.get(env_key)
        if value in (None, ""):
            value = _DEFAULTS.get(field)
        values[field] = "" if value is None else str(value).strip()

    missing = [_FIELDS[f][0] for f, v in values.items() if not v]
    ErrorHandler.validate_context_keys(missing, "cdk.json / environment")

    for field in _ACCOUNT_FIELDS:
        ErrorHandler.validate_pattern(
            values[field],
            ACCOUNT_ID_PATTERN,
            _FIELDS[field][0],
            description="a 12-digit AWS account ID",
        )
    ErrorHandler.validate_distinct({_FIELDS[f][0]: values[f] for f in _ACCOUNT_FIELDS})

    return PipelineCfg(
        accounts=AccountSet(
            pipeline_account_id=values["pipeline_account_id"],
            dev_account_id=values["dev_account_id"],
            test_account_id=values["test_account_id"],
            prod_account_id=values["prod_account_id"],
            region=values["region"],
        ),
        repository=RepositoryCoordinate(
            owner=values["github_owner"],
            name=values["github_repo"],
            branch=values["github_branch"],
        ),
        github_token_secret=values["github_token_secret"],
    )


def _node(obj: Union[App, Stack]):
    """
    Get the CDK node from an App or Stack.

    Args:
        obj: CDK App or Stack instance

    Returns:
        CDK node instance
    """
    return (obj if isinstance(obj, App) else Stack.of(obj)).node


@lru_cache(maxsize=8)
def get_cfg(obj: Union[App, Stack]) -> PipelineCfg:
    """
    Load project configuration from the CDK context of an app or stack.

    Resolved once per app; repeated calls return the same object.

    Args:
        obj: CDK App or Stack instance

    Returns:
        Validated project configuration
    """
    node = _node(obj)
    context = {key: node.try_get_context(key) for key in CONTEXT_KEYS}
    context["pipeline"] = node.try_get_context("pipeline") or {}

    block = context["pipeline"] if isinstance(context["pipeline"], dict) else {}
    reader = None
    if _truthy(context.get("useSSMConfig") or block.get("useSSMConfig")):
        region = context.get("region") or block.get("region") or os.environ.get("AWS_REGION") or DEFAULT_REGION
        reader = ssm_reader(str(region))

    return resolve_cfg(context, os.environ, reader)


def bootstrap_qualifier(environ: Mapping[str, str], context_value: Optional[object] = None) -> str:
    """Qualifier from ``CDK_QUALIFIER``, then CDK context, then the default."""
    return str(environ.get("CDK_QUALIFIER") or context_value or DEFAULT_QUALIFIER)


def pin_bootstrap_qualifier(app: App, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Make every stack in the app synthesize against the bootstrapped toolkit.

    Must run before any stack is added to the app.

    Args:
        app: CDK App
        environ: Environment variables (defaults to ``os.environ``)

    Returns:
        The qualifier written to the app context
    """
    qualifier = bootstrap_qualifier(
        os.environ if environ is None else environ,
        app.node.try_get_context(QUALIFIER_CONTEXT_KEY),
    )
    app.node.set_context(QUALIFIER_CONTEXT_KEY, qualifier)
    return qualifier
