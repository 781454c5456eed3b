"""
This module contains template tests for the workload stack and the parameter construct.
"""

import unittest

import aws_cdk as cdk
from aws_cdk import assertions

from cdk_pipeline.builders.parameter_builder import TOKEN_PLACEHOLDER, PipelineParameters, _logical_id
from cdk_pipeline.configs.parameter_specs import ParameterKind, ParameterSpec
from cdk_pipeline.stacks.workload_stack import WorkloadStack


class TestWorkloadStack(unittest.TestCase):
    def setUp(self):
        self.app = cdk.App()

    def test_dev_bucket_destroyed_with_stack(self):
        stack = WorkloadStack(self.app, "WorkloadStack-dev", env_name="dev")
        template = assertions.Template.from_stack(stack)

        template.resource_count_is("AWS::S3::Bucket", 1)
        template.has_resource("AWS::S3::Bucket", {"DeletionPolicy": "Delete"})
        template.has_resource_properties("AWS::S3::Bucket", {
            "PublicAccessBlockConfiguration": {
                "BlockPublicAcls": True,
                "BlockPublicPolicy": True,
                "IgnorePublicAcls": True,
                "RestrictPublicBuckets": True,
            },
            "Tags": assertions.Match.array_with([{"Key": "Environment", "Value": "dev"}]),
        })

    def test_prod_bucket_retained_and_versioned(self):
        stack = WorkloadStack(self.app, "WorkloadStack-prod", env_name="prod")
        template = assertions.Template.from_stack(stack)

        template.has_resource("AWS::S3::Bucket", {"DeletionPolicy": "Retain"})
        template.has_resource_properties("AWS::S3::Bucket", {
            "VersioningConfiguration": {"Status": "Enabled"},
        })
        template.has_output("ArtifactBucketName", {})


class TestPipelineParameters(unittest.TestCase):
    def test_plain_and_secret_parameters(self):
        stack = cdk.Stack(cdk.App(), "ParamStack")
        PipelineParameters(stack, "Parameters", specs=[
            ParameterSpec("/cdk/accounts/dev", "111111111111", "Development Account ID"),
            ParameterSpec("/cdk/github/token", "ghp_secret", "GitHub access token", ParameterKind.SECRET),
        ], tags={"ManagedBy": "CDK"})
        template = assertions.Template.from_stack(stack)

        template.resource_count_is("AWS::SSM::Parameter", 2)
        template.has_resource_properties("AWS::SSM::Parameter", {
            "Name": "/cdk/accounts/dev",
            "Type": "String",
            "Value": "111111111111",
            "Tags": {"ManagedBy": "CDK"},
        })
        template.has_resource_properties("AWS::SSM::Parameter", {
            "Name": "/cdk/github/token",
            "Type": "SecureString",
            "Value": TOKEN_PLACEHOLDER,
        })
        assert "ghp_secret" not in str(template.to_json())

    def test_logical_id(self):
        assert _logical_id("/cdk/accounts/dev") == "CdkAccountsDev"


if __name__ == '__main__':
    unittest.main()
