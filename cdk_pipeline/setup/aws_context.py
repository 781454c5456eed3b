"""Explicit AWS credential context passed through every setup call."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Type

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cdk_pipeline.configs.error_handler import ConfigurationError, PipelineError

logger = logging.getLogger(__name__)

_CREDENTIAL_ENV_VARS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN", "AWS_PROFILE")


@dataclass(frozen=True)
class TemporaryCredentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)


@dataclass(frozen=True)
class AwsContext:
    """
    Credentials and region for one account.

    Contexts are values: assuming a role returns a new context and never
    touches the process environment, so credentials cannot leak from one
    account's calls into another's.
    """

    region: str
    profile_name: Optional[str] = None
    credentials: Optional[TemporaryCredentials] = None
    account_id: Optional[str] = None

    def session(self) -> boto3.session.Session:
        if self.credentials is not None:
            return boto3.session.Session(
                aws_access_key_id=self.credentials.access_key_id,
                aws_secret_access_key=self.credentials.secret_access_key,
                aws_session_token=self.credentials.session_token,
                region_name=self.region,
            )
        return boto3.session.Session(profile_name=self.profile_name, region_name=self.region)

    def client(self, service: str) -> Any:
        return self.session().client(service, region_name=self.region)

    def caller_account(self) -> str:
        """Return the account ID the context's credentials belong to."""
        try:
            return self.client("sts").get_caller_identity()["Account"]
        except (ClientError, BotoCoreError) as exc:
            raise ConfigurationError(
                f"Failed to get AWS account identity (profile={self.profile_name or 'default'}): {exc}"
            ) from exc

    def require_account(self, expected: str, label: str = "Pipeline") -> "AwsContext":
        """
        Verify that the credentials belong to ``expected``.

        Raises:
            ConfigurationError: On account mismatch
        """
        current = self.caller_account()
        if current != expected:
            raise ConfigurationError(
                f"Account mismatch: expected {expected} ({label} Account), current {current}"
            )
        logger.info("Connected to %s Account: %s", label, current)
        return replace(self, account_id=current)

    def assume_role(
            self,
            role_arn: str,
            session_name: str,
            duration_seconds: int = 3600,
            error: Type[PipelineError] = ConfigurationError
        ) -> "AwsContext":
        """
        Assume a role and return a context holding its temporary credentials.

        Raises:
            ConfigurationError: If the role cannot be assumed (or ``error``)
        """
        logger.info("Assuming role %s", role_arn)
        try:
            response = self.client("sts").assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                DurationSeconds=duration_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise error(f"Failed to assume role {role_arn}: {exc}") from exc

        creds = response["Credentials"]
        account_id = role_arn.split(":")[4] if role_arn.count(":") >= 5 else None
        return AwsContext(
            region=self.region,
            credentials=TemporaryCredentials(
                access_key_id=creds["AccessKeyId"],
                secret_access_key=creds["SecretAccessKey"],
                session_token=creds["SessionToken"],
            ),
            account_id=account_id,
        )

    def subprocess_env(self, base: Mapping[str, str]) -> dict[str, str]:
        """
        Build the environment for a child process acting with this context.

        When the context carries its own credentials or profile, ambient
        credential variables from ``base`` are dropped and replaced.
        """
        env = dict(base)
        if self.credentials is not None or self.profile_name:
            env = {k: v for k, v in env.items() if k not in _CREDENTIAL_ENV_VARS}
        env["AWS_REGION"] = self.region
        env["AWS_DEFAULT_REGION"] = self.region
        if self.credentials is not None:
            env["AWS_ACCESS_KEY_ID"] = self.credentials.access_key_id
            env["AWS_SECRET_ACCESS_KEY"] = self.credentials.secret_access_key
            env["AWS_SESSION_TOKEN"] = self.credentials.session_token
        elif self.profile_name:
            env["AWS_PROFILE"] = self.profile_name
        return env
