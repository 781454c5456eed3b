import aws_cdk as cdk
from cdk_pipeline.configs.pipeline_cfg import get_cfg, pin_bootstrap_qualifier
from cdk_pipeline.stacks.pipeline_stack import PipelineStack

app = cdk.App()
pin_bootstrap_qualifier(app)
cfg = get_cfg(app)

PIPELINE_ENV = cdk.Environment(
    account=cfg.accounts.pipeline_account_id,
    region=cfg.accounts.region,
)

PipelineStack(
    app,
    "CDKPipelineStack",
    env=PIPELINE_ENV,
    repository=cfg.repository,
    accounts=cfg.accounts,
    github_token_secret=cfg.github_token_secret,
)

app.synth()
