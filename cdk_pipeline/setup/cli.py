"""
Command line for preparing the AWS accounts of the pipeline.

Usage:
    cdk-pipeline-setup [--env-file PATH] [--profile NAME] [--region R] [--verbose] COMMAND

Commands:
    validate      Resolve and validate configuration, print a summary
    oidc          Ensure the GitHub OIDC provider, role and inline policy
    parameters    Write the configuration parameters to Parameter Store
    bootstrap     CDK-bootstrap the pipeline, dev, test and prod accounts
    all           validate, oidc and parameters, stopping at the first failure
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Sequence

from dotenv import dotenv_values

from cdk_pipeline.configs.error_handler import ConfigurationError, PipelineError
from cdk_pipeline.configs.parameter_specs import parameter_specs
from cdk_pipeline.configs.pipeline_cfg import (
    DEFAULT_QUALIFIER,
    QUALIFIER_CONTEXT_KEY,
    PipelineCfg,
    bootstrap_qualifier,
    resolve_cfg,
    ssm_reader,
)
from cdk_pipeline.configs.trust import BOOTSTRAP_ROLE_NAME
from cdk_pipeline.setup.aws_context import AwsContext
from cdk_pipeline.setup.bootstrap import bootstrap_accounts
from cdk_pipeline.setup.logging_utils import configure_logging
from cdk_pipeline.setup.oidc_setup import setup_github_oidc
from cdk_pipeline.setup.parameter_setup import write_parameters

logger = logging.getLogger("cdk_pipeline.setup")

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def load_environment(env_file: Optional[str] = None, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Merge ``.env`` values under the process environment.

    The repository root ``.env`` is read first, then the one in the working
    directory (or ``env_file`` when given). Real environment variables win
    over file values. ``os.environ`` itself is left untouched.

    Args:
        env_file: Explicit .env path
        base: Environment taking precedence (``os.environ`` if None)

    Returns:
        Merged environment
    """
    merged: Dict[str, str] = {}
    candidates = [Path(env_file)] if env_file else [PROJECT_ROOT / ".env", Path.cwd() / ".env"]
    for path in candidates:
        if path.is_file():
            logger.debug("Loading environment from %s", path)
            merged.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    merged.update(os.environ if base is None else base)
    return merged


def cdk_context() -> Dict[str, object]:
    """Context block of the project's cdk.json, empty when there is none."""
    path = PROJECT_ROOT / "cdk.json"
    if not path.is_file():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8")).get("context") or {}
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid JSON: {exc}") from exc


class SetupRun:
    """State shared by the commands of one invocation."""

    def __init__(self, args: argparse.Namespace, environ: Dict[str, str]) -> None:
        self.args = args
        self.environ = environ
        if args.region:
            self.environ["AWS_REGION"] = args.region
        self._cfg: Optional[PipelineCfg] = None
        self._ctx: Optional[AwsContext] = None

    @property
    def region(self) -> str:
        return self.cfg.accounts.region

    @property
    def cfg(self) -> PipelineCfg:
        if self._cfg is None:
            context: Dict[str, object] = {}
            reader = None
            if self.args.use_ssm:
                context["useSSMConfig"] = True
                region = self.environ.get("AWS_REGION") or self.environ.get("CDK_DEFAULT_REGION")
                ctx = AwsContext(region=region or "us-east-1", profile_name=self.args.profile)
                reader = ssm_reader(ctx.region, session=ctx.session())
            self._cfg = resolve_cfg(context, self.environ, reader)
        return self._cfg

    @property
    def ctx(self) -> AwsContext:
        """Credentials verified to belong to the pipeline account."""
        if self._ctx is None:
            ctx = AwsContext(region=self.region, profile_name=self.args.profile)
            self._ctx = ctx.require_account(self.cfg.accounts.pipeline_account_id)
        return self._ctx


def cmd_validate(run: SetupRun) -> None:
    cfg = run.cfg
    accounts = cfg.accounts
    logger.info("Configuration is valid")
    logger.info("Repository: %s (branch %s)", cfg.repository.full_name, cfg.repository.branch)
    logger.info("Region: %s", accounts.region)
    for label, account_id in accounts.as_dict().items():
        logger.info("  %-8s %s", label, account_id)


def cmd_oidc(run: SetupRun) -> None:
    result = setup_github_oidc(run.cfg, run.ctx.client("iam"), role_name=run.args.role_name)
    logger.info("OIDC setup complete: provider %s, role %s", result.provider.outcome.value, result.role.outcome.value)


def cmd_parameters(run: SetupRun) -> None:
    token = getattr(run.args, "github_token", None) or run.environ.get("GITHUB_TOKEN") or None
    if token is None:
        logger.warning("No GitHub token given; /cdk/github/token is not written")
    specs = parameter_specs(run.cfg, github_token=token)
    results = write_parameters(specs, run.ctx.client("ssm"))
    logger.info("Wrote %d parameters", len(results))


def cmd_bootstrap(run: SetupRun) -> None:
    qualifier = run.args.qualifier or bootstrap_qualifier(
        run.environ, cdk_context().get(QUALIFIER_CONTEXT_KEY)
    )
    results = bootstrap_accounts(run.cfg, run.ctx, qualifier=qualifier, environ=run.environ)
    for result in results:
        logger.info("%s: %s", result.name, result.outcome.value)


def cmd_all(run: SetupRun) -> None:
    for step in (cmd_validate, cmd_oidc, cmd_parameters):
        step(run)


COMMANDS: Dict[str, Callable[[SetupRun], None]] = {
    "validate": cmd_validate,
    "oidc": cmd_oidc,
    "parameters": cmd_parameters,
    "bootstrap": cmd_bootstrap,
    "all": cmd_all,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cdk-pipeline-setup",
        description="Prepare AWS accounts for the multi-account CDK pipeline",
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--profile", help="AWS profile for the pipeline account")
    parser.add_argument("--region", help="AWS region (overrides AWS_REGION)")
    parser.add_argument("--use-ssm", action="store_true", help="Read configuration from Parameter Store")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("validate", help="Resolve and validate configuration")
    oidc = sub.add_parser("oidc", help="Set up GitHub OIDC trust")
    oidc.add_argument("--role-name", default=BOOTSTRAP_ROLE_NAME)
    params = sub.add_parser("parameters", help="Write configuration parameters")
    params.add_argument("--github-token", help="GitHub token (defaults to GITHUB_TOKEN)")
    boot = sub.add_parser("bootstrap", help="Bootstrap all pipeline accounts")
    boot.add_argument("--qualifier", help=f"Bootstrap qualifier (defaults to CDK_QUALIFIER, cdk.json, then {DEFAULT_QUALIFIER})")
    all_cmd = sub.add_parser("all", help="validate, oidc and parameters")
    all_cmd.add_argument("--role-name", default=BOOTSTRAP_ROLE_NAME)
    all_cmd.add_argument("--github-token", help="GitHub token (defaults to GITHUB_TOKEN)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    run = SetupRun(args, load_environment(args.env_file))
    try:
        COMMANDS[args.command](run)
    except PipelineError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
