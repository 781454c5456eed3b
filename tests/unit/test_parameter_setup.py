"""Tests for the scripted Parameter Store writer."""

from __future__ import annotations

import logging

import pytest

from cdk_pipeline.configs.error_handler import ParameterWriteError
from cdk_pipeline.configs.parameter_specs import parameter_specs
from cdk_pipeline.setup.idempotent import Outcome
from cdk_pipeline.setup.parameter_setup import DEFAULT_TAGS, write_parameters


def test_creates_missing_parameters(cfg, make_ssm) -> None:
    ssm = make_ssm()

    results = write_parameters(parameter_specs(cfg), ssm)

    assert [r.outcome for r in results] == [Outcome.CREATED] * 7
    assert ssm.parameters["/cdk/accounts/dev"] == "111111111111"
    assert ssm.parameters["/cdk/github/repo"] == "test-repo"
    first = ssm.puts[0]
    assert first["Type"] == "String"
    assert "Overwrite" not in first
    assert {"Key": "Project", "Value": "CDKPipeline"} in first["Tags"]


def test_overwrites_existing_parameters(cfg, make_ssm) -> None:
    ssm = make_ssm(existing={"/cdk/accounts/dev": "999999999999"})

    results = write_parameters(parameter_specs(cfg), ssm)

    assert results[0].outcome is Outcome.UPDATED
    assert ssm.parameters["/cdk/accounts/dev"] == "111111111111"
    assert ssm.puts[0]["Overwrite"] is True
    assert "Tags" not in ssm.puts[0]


def test_token_written_as_secure_string(cfg, make_ssm) -> None:
    ssm = make_ssm()

    write_parameters(parameter_specs(cfg, github_token="ghp_secret"), ssm)

    token = ssm.puts[-1]
    assert token["Name"] == "/cdk/github/token"
    assert token["Type"] == "SecureString"
    assert token["Value"] == "ghp_secret"


def test_fail_fast(cfg, make_ssm) -> None:
    ssm = make_ssm(fail_on_name="/cdk/accounts/prod")

    with pytest.raises(ParameterWriteError, match="/cdk/accounts/prod"):
        write_parameters(parameter_specs(cfg), ssm)

    assert [p["Name"] for p in ssm.puts] == ["/cdk/accounts/dev", "/cdk/accounts/test"]


def test_rerun_is_idempotent(cfg, make_ssm) -> None:
    ssm = make_ssm()
    write_parameters(parameter_specs(cfg), ssm)
    snapshot = dict(ssm.parameters)

    results = write_parameters(parameter_specs(cfg), ssm)

    assert ssm.parameters == snapshot
    assert all(r.outcome is Outcome.UPDATED for r in results)


def test_secret_never_logged(cfg, make_ssm, caplog) -> None:
    caplog.set_level(logging.DEBUG)

    write_parameters(parameter_specs(cfg, github_token="ghp_secret"), make_ssm())

    assert "ghp_secret" not in caplog.text
    assert "/cdk/github/token" in caplog.text


def test_custom_tags(cfg, make_ssm) -> None:
    ssm = make_ssm()
    write_parameters(parameter_specs(cfg)[:1], ssm, tags={"Team": "platform"})

    assert ssm.puts[0]["Tags"] == [{"Key": "Team", "Value": "platform"}]
    assert DEFAULT_TAGS["ManagedBy"] == "GitHubActions"
