"""Tests for the multi-account CDK bootstrap."""

from __future__ import annotations

import subprocess

import pytest

from cdk_pipeline.configs.error_handler import BootstrapError
from cdk_pipeline.setup import bootstrap
from cdk_pipeline.setup.aws_context import AwsContext, TemporaryCredentials
from cdk_pipeline.setup.bootstrap import (
    BootstrapTarget,
    bootstrap_accounts,
    bootstrap_command,
    bootstrap_targets,
    toolkit_stack_name,
)
from cdk_pipeline.setup.idempotent import Outcome


class FakeCloudFormation:
    def __init__(self, version, client_error):
        self.version = version
        self.client_error = client_error

    def describe_stacks(self, StackName):
        if self.version is None:
            raise self.client_error("ValidationError", "DescribeStacks")
        return {"Stacks": [{"StackName": StackName, "Outputs": [
            {"OutputKey": "BootstrapVersion", "OutputValue": str(self.version)},
        ]}]}


class FakeSts:
    def __init__(self, fail_for=None, client_error=None):
        self.fail_for = fail_for
        self.client_error = client_error
        self.assumed = []

    def assume_role(self, RoleArn, RoleSessionName, DurationSeconds):
        if self.fail_for and self.fail_for in RoleArn:
            raise self.client_error("AccessDenied", "AssumeRole")
        self.assumed.append(RoleArn)
        account = RoleArn.split(":")[4]
        return {"Credentials": {
            "AccessKeyId": f"AKIA{account}",
            "SecretAccessKey": "secret",
            "SessionToken": "token",
        }}


class Runner:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def __call__(self, command, check, env):
        self.calls.append((command, env))
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(command, 0)


@pytest.fixture
def aws(monkeypatch, make_client_error):
    """Per-account fake clients; the pipeline account has no assumed credentials."""
    state = {
        "versions": {"123456789012": None, "111111111111": None, "222222222222": None, "333333333333": None},
        "sts": FakeSts(client_error=make_client_error),
    }

    def client(self, service):
        account = self.account_id or "123456789012"
        if service == "sts":
            return state["sts"]
        return FakeCloudFormation(state["versions"][account], make_client_error)

    monkeypatch.setattr(AwsContext, "client", client)
    return state


@pytest.fixture
def ctx():
    return AwsContext(region="us-east-1", profile_name="pipeline", account_id="123456789012")


def test_targets_order(cfg) -> None:
    targets = bootstrap_targets(cfg)

    assert [t.environment for t in targets] == ["Pipeline", "Development", "Testing", "Production"]
    assert targets[0].trusted_account_id is None
    assert {t.trusted_account_id for t in targets[1:]} == {"123456789012"}


def test_command_for_target_account() -> None:
    target = BootstrapTarget("111111111111", "Development", "123456789012")
    command = bootstrap_command(target, "us-east-1", "myorg", today="2024-01-02")

    assert command[:3] == ["cdk", "bootstrap", "aws://111111111111/us-east-1"]
    assert command[command.index("--qualifier") + 1] == "myorg"
    assert command[command.index("--toolkit-stack-name") + 1] == "CDKToolkit-myorg"
    assert command[command.index("--trust") + 1] == "123456789012"
    assert command[command.index("--trust-for-lookup") + 1] == "123456789012"
    assert "--bootstrap-customer-key" in command
    tags = [command[i + 1] for i, arg in enumerate(command) if arg == "--tags"]
    assert tags == [
        "Environment=Development",
        "ManagedBy=CDK",
        "Qualifier=myorg",
        "PipelineAccount=123456789012",
        "BootstrapDate=2024-01-02",
    ]


def test_command_for_pipeline_account() -> None:
    command = bootstrap_command(BootstrapTarget("123456789012", "Pipeline"), "us-east-1", "q")

    assert "--trust" not in command
    assert not any(arg.startswith("PipelineAccount=") for arg in command)


def test_bootstraps_all_accounts(cfg, ctx, aws) -> None:
    runner = Runner()

    results = bootstrap_accounts(cfg, ctx, runner=runner, environ={"PATH": "/bin"})

    assert [r.outcome for r in results] == [Outcome.CREATED] * 4
    accounts = [command[2] for command, _ in runner.calls]
    assert accounts == [
        "aws://123456789012/us-east-1",
        "aws://111111111111/us-east-1",
        "aws://222222222222/us-east-1",
        "aws://333333333333/us-east-1",
    ]
    assert aws["sts"].assumed == [
        "arn:aws:iam::111111111111:role/OrganizationAccountAccessRole",
        "arn:aws:iam::222222222222:role/OrganizationAccountAccessRole",
        "arn:aws:iam::333333333333:role/OrganizationAccountAccessRole",
    ]


def test_credentials_passed_explicitly(cfg, ctx, aws) -> None:
    runner = Runner()

    bootstrap_accounts(cfg, ctx, runner=runner, environ={"AWS_PROFILE": "ambient"})

    pipeline_env = runner.calls[0][1]
    dev_env = runner.calls[1][1]
    assert pipeline_env["AWS_PROFILE"] == "pipeline"
    assert dev_env["AWS_ACCESS_KEY_ID"] == "AKIA111111111111"
    assert "AWS_PROFILE" not in dev_env


def test_skips_current_accounts(cfg, ctx, aws) -> None:
    aws["versions"].update({"123456789012": 21, "111111111111": 14, "222222222222": 13})
    runner = Runner()

    results = bootstrap_accounts(cfg, ctx, runner=runner, environ={})

    assert [r.outcome for r in results] == [Outcome.UNCHANGED, Outcome.UNCHANGED, Outcome.UPDATED, Outcome.CREATED]
    assert results[0].identifier == "version 21"
    assert [command[2] for command, _ in runner.calls] == [
        "aws://222222222222/us-east-1",
        "aws://333333333333/us-east-1",
    ]


def test_custom_targets_and_qualifier(cfg, ctx, aws) -> None:
    runner = Runner()
    target = BootstrapTarget("123456789012", "Pipeline")

    results = bootstrap_accounts(cfg, ctx, qualifier="acme", targets=[target], runner=runner, environ={})

    assert len(results) == 1
    assert results[0].name == f"{toolkit_stack_name('acme')}@123456789012"
    assert "acme" in runner.calls[0][0]


def test_cdk_failure(cfg, ctx, aws) -> None:
    runner = Runner(subprocess.CalledProcessError(1, ["cdk"]))

    with pytest.raises(BootstrapError, match="Pipeline account 123456789012"):
        bootstrap_accounts(cfg, ctx, runner=runner, environ={})
    assert len(runner.calls) == 1


def test_cdk_not_installed(cfg, ctx, aws) -> None:
    with pytest.raises(BootstrapError, match="not installed"):
        bootstrap_accounts(cfg, ctx, runner=Runner(FileNotFoundError("cdk")), environ={})


def test_assume_role_failure(cfg, ctx, aws) -> None:
    aws["sts"].fail_for = "222222222222"
    runner = Runner()

    with pytest.raises(BootstrapError, match="222222222222"):
        bootstrap_accounts(cfg, ctx, runner=runner, environ={})
    assert len(runner.calls) == 2


def test_describe_failure_wrapped(cfg, ctx, monkeypatch, make_client_error) -> None:
    class Broken:
        def describe_stacks(self, StackName):
            raise make_client_error("AccessDenied", "DescribeStacks")

    monkeypatch.setattr(AwsContext, "client", lambda self, service: Broken())

    with pytest.raises(BootstrapError, match="AccessDenied"):
        bootstrap_accounts(cfg, ctx, runner=Runner(), environ={})


def test_minimum_version() -> None:
    assert bootstrap.MIN_BOOTSTRAP_VERSION == 14


def test_assumed_context_has_no_profile(ctx, aws) -> None:
    target = BootstrapTarget("111111111111", "Development", "123456789012")
    assumed = bootstrap.context_for(ctx, target, "123456789012")

    assert isinstance(assumed.credentials, TemporaryCredentials)
    assert assumed.profile_name is None
    assert bootstrap.context_for(ctx, BootstrapTarget("123456789012", "Pipeline"), "123456789012") is ctx
