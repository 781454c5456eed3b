"""
Workload stack deployed by each deployment stage of the pipeline.

Holds the environment's artifact bucket. Resources are named from the
environment so the same stack can be promoted Dev -> Test -> Prod into
separate accounts.
"""

from __future__ import annotations

from aws_cdk import CfnOutput, RemovalPolicy, Stack, Tags
from aws_cdk import aws_s3 as s3
from constructs import Construct


class WorkloadStack(Stack):
    """
    Per-environment workload infrastructure.

    Production data is retained on stack deletion; other environments are
    destroyed with the stack.
    """

    def __init__(self, scope: Construct, construct_id: str, *, env_name: str, **kwargs) -> None:
        """
        Initialize the workload stack.

        Args:
            scope: CDK construct scope
            construct_id: Construct ID
            env_name: Environment name (dev, test, prod)
            **kwargs: Additional stack properties
        """
        super().__init__(scope, construct_id, **kwargs)

        is_prod = env_name.lower() == "prod"

        self.bucket = s3.Bucket(
            self,
            "ArtifactBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            versioned=is_prod,
            removal_policy=RemovalPolicy.RETAIN if is_prod else RemovalPolicy.DESTROY,
        )

        Tags.of(self).add("Environment", env_name.lower())
        Tags.of(self).add("ManagedBy", "CDK")

        CfnOutput(
            self,
            "ArtifactBucketName",
            value=self.bucket.bucket_name,
            description=f"Artifact bucket of the {env_name} environment",
        )
