"""
Multi-account CDK bootstrap.

Bootstraps the pipeline account first, then the dev, test and prod accounts
with trust towards the pipeline account. Accounts already carrying a recent
enough toolkit stack are skipped. Target accounts are reached through the
AWS Organizations access role; its temporary credentials are handed to the
``cdk`` process explicitly.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional, Sequence

from botocore.exceptions import ClientError

from cdk_pipeline.configs.error_handler import BootstrapError
from cdk_pipeline.configs.pipeline_cfg import DEFAULT_QUALIFIER, PipelineCfg
from cdk_pipeline.setup.aws_context import AwsContext
from cdk_pipeline.setup.idempotent import EnsureResult, ManagedResource, ensure, error_code

logger = logging.getLogger(__name__)

MIN_BOOTSTRAP_VERSION = 14
ORGANIZATION_ACCESS_ROLE = "OrganizationAccountAccessRole"
EXECUTION_POLICY = "arn:aws:iam::aws:policy/AdministratorAccess"
SESSION_NAME = "CDKBootstrap"

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True)
class BootstrapTarget:
    """
    One account to bootstrap.

    Attributes:
        account_id: Account to bootstrap
        environment: Environment label used in tags and logs
        trusted_account_id: Account allowed to deploy into this one (None for the pipeline account)
    """
    account_id: str
    environment: str
    trusted_account_id: Optional[str] = None


def bootstrap_targets(cfg: PipelineCfg) -> List[BootstrapTarget]:
    """Pipeline account first, then Development, Testing, Production."""
    accounts = cfg.accounts
    pipeline = accounts.pipeline_account_id
    return [
        BootstrapTarget(pipeline, "Pipeline"),
        BootstrapTarget(accounts.dev_account_id, "Development", pipeline),
        BootstrapTarget(accounts.test_account_id, "Testing", pipeline),
        BootstrapTarget(accounts.prod_account_id, "Production", pipeline),
    ]


def bootstrap_command(
        target: BootstrapTarget,
        region: str,
        qualifier: str,
        today: Optional[str] = None
    ) -> List[str]:
    """
    Build the ``cdk bootstrap`` command line for a target.

    Args:
        target: Account to bootstrap
        region: Region to bootstrap
        qualifier: Bootstrap qualifier
        today: Bootstrap date tag (UTC date if None)

    Returns:
        Command as an argument list
    """
    today = today or datetime.now(timezone.utc).strftime("%Y-%m-%d")
    command = [
        "cdk", "bootstrap", f"aws://{target.account_id}/{region}",
        "--qualifier", qualifier,
        "--toolkit-stack-name", toolkit_stack_name(qualifier),
        "--cloudformation-execution-policies", EXECUTION_POLICY,
        "--bootstrap-customer-key",
    ]
    if target.trusted_account_id:
        command += [
            "--trust", target.trusted_account_id,
            "--trust-for-lookup", target.trusted_account_id,
        ]
    tags = {
        "Environment": target.environment,
        "ManagedBy": "CDK",
        "Qualifier": qualifier,
    }
    if target.trusted_account_id:
        tags["PipelineAccount"] = target.trusted_account_id
    tags["BootstrapDate"] = today
    for key, value in tags.items():
        command += ["--tags", f"{key}={value}"]
    return command


def toolkit_stack_name(qualifier: str) -> str:
    return f"CDKToolkit-{qualifier}"


class ToolkitStackResource(ManagedResource[int]):
    """The CDK toolkit stack of one account; its state is the bootstrap version."""

    kind = "CDK toolkit stack"

    def __init__(
            self,
            ctx: AwsContext,
            target: BootstrapTarget,
            qualifier: str,
            runner: Runner,
            environ: Mapping[str, str]
        ) -> None:
        self.ctx = ctx
        self.target = target
        self.qualifier = qualifier
        self.runner = runner
        self.environ = environ
        self.name = f"{toolkit_stack_name(qualifier)}@{target.account_id}"

    def find(self) -> Optional[int]:
        try:
            stacks = self.ctx.client("cloudformation").describe_stacks(
                StackName=toolkit_stack_name(self.qualifier)
            )["Stacks"]
        except ClientError as exc:
            if error_code(exc) == "ValidationError":
                return None
            raise
        outputs = stacks[0].get("Outputs", []) if stacks else []
        for output in outputs:
            if output.get("OutputKey") == "BootstrapVersion":
                try:
                    return int(output.get("OutputValue", 0))
                except (TypeError, ValueError):
                    return 0
        return 0

    def is_current(self, existing: int) -> bool:
        return existing >= MIN_BOOTSTRAP_VERSION

    def identify(self, existing: int) -> str:
        return f"version {existing}"

    def create(self) -> str:
        return self._bootstrap()

    def update(self, existing: int) -> str:
        logger.warning(
            "Account %s has outdated bootstrap version %s", self.target.account_id, existing
        )
        return self._bootstrap()

    def _bootstrap(self) -> str:
        command = bootstrap_command(self.target, self.ctx.region, self.qualifier)
        logger.info("Bootstrapping %s Account: %s", self.target.environment, self.target.account_id)
        try:
            self.runner(command, check=True, env=self.ctx.subprocess_env(self.environ))
        except FileNotFoundError as exc:
            raise BootstrapError("AWS CDK is not installed (cdk not found on PATH)") from exc
        except subprocess.CalledProcessError as exc:
            raise BootstrapError(
                f"Failed to bootstrap {self.target.environment} account {self.target.account_id} "
                f"(exit code {exc.returncode})"
            ) from exc
        return f"aws://{self.target.account_id}/{self.ctx.region}"


def context_for(ctx: AwsContext, target: BootstrapTarget, pipeline_account_id: str) -> AwsContext:
    """Credentials for a target; target accounts go through the organization access role."""
    if target.account_id == pipeline_account_id:
        return ctx
    role_arn = f"arn:aws:iam::{target.account_id}:role/{ORGANIZATION_ACCESS_ROLE}"
    return ctx.assume_role(role_arn, SESSION_NAME, error=BootstrapError)


def bootstrap_accounts(
        cfg: PipelineCfg,
        ctx: AwsContext,
        *,
        qualifier: str = DEFAULT_QUALIFIER,
        targets: Optional[Sequence[BootstrapTarget]] = None,
        runner: Runner = subprocess.run,
        environ: Optional[Mapping[str, str]] = None
    ) -> List[EnsureResult]:
    """
    Bootstrap every account of the pipeline, skipping up-to-date ones.

    Args:
        cfg: Resolved project configuration
        ctx: Credentials for the pipeline account
        qualifier: Bootstrap qualifier
        targets: Accounts to bootstrap (all pipeline accounts if None)
        runner: Process runner (``subprocess.run`` signature)
        environ: Base environment for the ``cdk`` process (``os.environ`` if None)

    Returns:
        One result per account, in bootstrap order

    Raises:
        BootstrapError: On the first failing account
    """
    environ = os.environ if environ is None else environ
    targets = list(targets) if targets is not None else bootstrap_targets(cfg)
    pipeline_account_id = cfg.accounts.pipeline_account_id

    logger.info("Starting multi-account CDK bootstrap (region %s, qualifier %s)", ctx.region, qualifier)
    results = []
    for target in targets:
        target_ctx = context_for(ctx, target, pipeline_account_id)
        resource = ToolkitStackResource(target_ctx, target, qualifier, runner, environ)
        results.append(ensure(resource, BootstrapError))
        logger.info("%s account bootstrap complete", target.environment)
    return results
