import os
import sys

import pytest
from botocore.exceptions import ClientError

# Add the project root to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cdk_pipeline.configs.pipeline_cfg import AccountSet, PipelineCfg, RepositoryCoordinate  # noqa: E402

PIPELINE_ACCOUNT = "123456789012"
DEV_ACCOUNT = "111111111111"
TEST_ACCOUNT = "222222222222"
PROD_ACCOUNT = "333333333333"
REGION = "us-east-1"


@pytest.fixture
def accounts() -> AccountSet:
    return AccountSet(
        pipeline_account_id=PIPELINE_ACCOUNT,
        dev_account_id=DEV_ACCOUNT,
        test_account_id=TEST_ACCOUNT,
        prod_account_id=PROD_ACCOUNT,
        region=REGION,
    )


@pytest.fixture
def repository() -> RepositoryCoordinate:
    return RepositoryCoordinate(owner="test-org", name="test-repo", branch="main")


@pytest.fixture
def cfg(accounts, repository) -> PipelineCfg:
    return PipelineCfg(accounts=accounts, repository=repository)


@pytest.fixture
def env_vars() -> dict:
    return {
        "GITHUB_ORG": "test-org",
        "GITHUB_REPO": "test-repo",
        "PIPELINE_ACCOUNT_ID": PIPELINE_ACCOUNT,
        "DEV_ACCOUNT_ID": DEV_ACCOUNT,
        "TEST_ACCOUNT_ID": TEST_ACCOUNT,
        "PROD_ACCOUNT_ID": PROD_ACCOUNT,
    }


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised"}}, operation)


class FakeIam:
    """Records IAM calls; providers and roles live in dicts."""

    def __init__(self, providers=None, roles=None, fail_on=None):
        self.providers = list(providers or [])
        self.roles = dict(roles or {})
        self.fail_on = fail_on or {}
        self.calls = []

    def _call(self, name, **kwargs):
        self.calls.append((name, kwargs))
        if name in self.fail_on:
            raise client_error(self.fail_on[name], name)

    def list_open_id_connect_providers(self):
        self._call("list_open_id_connect_providers")
        return {"OpenIDConnectProviderList": [{"Arn": arn} for arn in self.providers]}

    def create_open_id_connect_provider(self, **kwargs):
        self._call("create_open_id_connect_provider", **kwargs)
        host = kwargs["Url"].removeprefix("https://")
        arn = f"arn:aws:iam::123456789012:oidc-provider/{host}"
        self.providers.append(arn)
        return {"OpenIDConnectProviderArn": arn}

    def get_role(self, RoleName):
        self._call("get_role", RoleName=RoleName)
        if RoleName not in self.roles:
            raise client_error("NoSuchEntity", "GetRole")
        return {"Role": self.roles[RoleName]}

    def create_role(self, **kwargs):
        self._call("create_role", **kwargs)
        role = {"RoleName": kwargs["RoleName"], "Arn": f"arn:aws:iam::123456789012:role/{kwargs['RoleName']}"}
        self.roles[kwargs["RoleName"]] = role
        return {"Role": role}

    def update_assume_role_policy(self, **kwargs):
        self._call("update_assume_role_policy", **kwargs)

    def put_role_policy(self, **kwargs):
        self._call("put_role_policy", **kwargs)

    def names(self):
        return [name for name, _ in self.calls]


class FakeSsm:
    """Records SSM calls; parameters live in a dict of name -> value."""

    def __init__(self, existing=None, fail_on_name=None):
        self.parameters = dict(existing or {})
        self.fail_on_name = fail_on_name
        self.puts = []

    def describe_parameters(self, ParameterFilters):
        name = ParameterFilters[0]["Values"][0]
        if name in self.parameters:
            return {"Parameters": [{"Name": name}]}
        return {"Parameters": []}

    def put_parameter(self, **kwargs):
        if kwargs["Name"] == self.fail_on_name:
            raise client_error("AccessDeniedException", "PutParameter")
        self.puts.append(kwargs)
        self.parameters[kwargs["Name"]] = kwargs["Value"]
        return {"Version": 1}


@pytest.fixture
def make_iam():
    return FakeIam


@pytest.fixture
def make_ssm():
    return FakeSsm


@pytest.fixture
def make_client_error():
    return client_error
