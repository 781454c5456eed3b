"""
IAM policy builders for the CDK pipeline project.

A policy file names AWS managed policies and inline policies for one role:

    {
      "managed": ["AdministratorAccess", "arn:aws:iam::aws:policy/ReadOnlyAccess"],
      "inline": {
        "PolicyName": [
          {"Effect": "Allow", "Action": ["s3:GetObject"], "Resource": ["arn:aws:s3:::bucket/*"]}
        ]
      }
    }

The parsed ``PolicyConfig`` is attached to CDK roles by the stack and rendered
to plain policy documents by the scripted setup.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from aws_cdk import aws_iam as iam

from cdk_pipeline.configs.config_manager import ConfigManager
from cdk_pipeline.configs.error_handler import ErrorHandler, ValidationError

POLICY_VERSION = "2012-10-17"

_KEYS = {"managed", "inline"}


def _as_list(obj: Any) -> List[Any]:
    return obj if isinstance(obj, list) else [obj]


def _check_statement(statement: Any, label: str) -> None:
    ErrorHandler.validate_type(statement, dict, label, "Policy", ValidationError)
    ErrorHandler.validate_required_fields(statement, ["Effect", "Action"], label, ValidationError)
    if "Resource" not in statement and "NotResource" not in statement:
        raise ValidationError(f"{label} must include Resource or NotResource")


@dataclass(frozen=True)
class PolicyConfig:
    """
    Managed and inline policies for one role.

    Attributes:
        managed: Managed policy names or ARNs
        inline: Inline policy name to its statements
    """
    managed: Tuple[str, ...] = ()
    inline: Dict[str, Tuple[dict, ...]] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: Any) -> "PolicyConfig":
        """
        Build a policy config from a loaded policy file.

        Raises:
            ValidationError: On unknown keys, wrong types, empty inline
                policies or statements lacking Effect, Action or Resource
        """
        ErrorHandler.validate_type(raw, dict, "policy config", "Policy", ValidationError)
        unknown = sorted(set(raw) - _KEYS)
        if unknown:
            raise ValidationError(f"Unknown keys in policy config: {', '.join(unknown)}")

        managed = raw.get("managed", [])
        ErrorHandler.validate_type(managed, (list, tuple), "managed", "Policy", ValidationError)

        inline_raw = raw.get("inline", {})
        ErrorHandler.validate_type(inline_raw, dict, "inline", "Policy", ValidationError)

        inline: Dict[str, Tuple[dict, ...]] = {}
        for name, statements in inline_raw.items():
            ErrorHandler.validate_string_not_empty(name, "inline policy name", "Policy", ValidationError)
            statements = _as_list(statements)
            ErrorHandler.validate_not_empty(statements, f"inline policy '{name}'", "Policy", ValidationError)
            for i, statement in enumerate(statements):
                _check_statement(statement, f"Statement #{i} in '{name}'")
            inline[name] = tuple(statements)

        return cls(managed=tuple(managed), inline=inline)

    def documents(self) -> Dict[str, dict]:
        """Inline policies as ``2012-10-17`` policy documents, keyed by policy name."""
        return {
            name: {"Version": POLICY_VERSION, "Statement": list(statements)}
            for name, statements in self.inline.items()
        }

    def apply_to(self, role: iam.Role) -> None:
        """Attach the managed policies and create one ``iam.Policy`` per inline policy."""
        for policy in self.managed:
            if policy.startswith("arn:"):
                managed = iam.ManagedPolicy.from_managed_policy_arn(
                    role, f"Managed-{policy.rsplit('/', 1)[-1]}", policy
                )
            else:
                managed = iam.ManagedPolicy.from_aws_managed_policy_name(policy)
            role.add_managed_policy(managed)

        for name, statements in self.inline.items():
            iam.Policy(
                role,
                f"Inline-{name}",
                document=iam.PolicyDocument(
                    statements=[iam.PolicyStatement.from_json(s) for s in statements]
                ),
                roles=[role],
            )


def load_policy_config(config_mgr: ConfigManager, filename: str) -> PolicyConfig:
    """
    Load, render and validate a policy file.

    Args:
        config_mgr: Config manager carrying placeholder variables
        filename: Policy file under ``configs/iam/policies``

    Returns:
        Parsed policy configuration

    Raises:
        ConfigurationError: If the file is missing or not valid JSON
        ValidationError: If its structure is invalid
    """
    return PolicyConfig.parse(config_mgr.load("policies", filename))


def apply_policies_to_role(role: iam.Role, filename: str, config_mgr: ConfigManager) -> PolicyConfig:
    """
    Apply the policies of a policy file to a role.

    Args:
        role: IAM role receiving the policies
        filename: Policy file name
        config_mgr: Config manager used to load and render the file

    Returns:
        The applied policy configuration
    """
    config = load_policy_config(config_mgr, filename)
    config.apply_to(role)
    return config
