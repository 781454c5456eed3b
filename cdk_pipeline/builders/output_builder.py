"""
Stack outputs and cross-stack exports.

Export names are global within an account and region. Defining the same
export name twice in one app for the same environment is rejected at synth
time; CloudFormation rejects duplicates across separately deployed apps.
"""

from __future__ import annotations
from typing import Optional

from aws_cdk import CfnOutput, Stack, Token
from constructs import Construct

from cdk_pipeline.configs.error_handler import TopologyError


def _env_key(stack: Stack) -> tuple[str, str]:
    return (stack.account, stack.region)


def _existing_export(stack: Stack, export_name: str) -> Optional[CfnOutput]:
    key = _env_key(stack)
    for construct in stack.node.root.node.find_all():
        if not isinstance(construct, CfnOutput):
            continue
        if construct.export_name != export_name:
            continue
        if _env_key(Stack.of(construct)) == key:
            return construct
    return None


def publish_output(
        stack: Stack,
        output_id: str,
        value: str,
        description: str,
        export_name: Optional[str] = None
    ) -> CfnOutput:
    """
    Publish a stack output, optionally exported under a global name.

    The output is created directly in the stack scope so its logical ID equals
    ``output_id``.

    Args:
        stack: Stack owning the output
        output_id: Logical ID of the output
        value: Output value
        description: Output description
        export_name: Optional export name for cross-stack consumption

    Returns:
        The created output

    Raises:
        TopologyError: If the export name is already defined for the same
            account and region in this app
    """
    if export_name is not None:
        if Token.is_unresolved(export_name):
            raise TopologyError(f"Export name for output '{output_id}' must be a literal string")
        clash = _existing_export(stack, export_name)
        if clash is not None:
            raise TopologyError(
                f"Export '{export_name}' is already defined by {clash.node.path}; "
                f"export names must be unique per account and region"
            )

    return CfnOutput(
        stack,
        output_id,
        value=value,
        description=description,
        export_name=export_name,
    )
