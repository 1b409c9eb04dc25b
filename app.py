#!/usr/bin/env python3
"""AWS CDK entrypoint for the tiered application deployment.

Defines the foundation, database, application and (optionally) routing
stacks in dependency order, sharing a single environment sourced from the
CDK CLI defaults. Stage, app name and the other knobs come from the CDK
context, e.g. ``cdk deploy -c stage=prod -c desired_count=2``.
After the first deploy, the functions in ``operations/`` populate the OAuth
placeholder secrets and scale the service up from zero.
"""
import os

import aws_cdk as cdk
from aws_cdk import Environment
from aws_lambda_powertools import Logger

from common.config import DeploymentConfig
from common.deployment import build_deployment

logger = Logger(service="cdk-app", level=os.getenv("LOG_LEVEL", "INFO").upper())

app = cdk.App()

env = Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION"),
)
config = DeploymentConfig.from_context(app.node)

logger.info(
    "Using AWS account/region",
    account=env.account,
    region=env.region,
    stage=config.stage,
    app_name=config.app_name,
)

deployment = build_deployment(app, config, env=env)
logger.info("Stack creation order", stacks=deployment.graph.creation_order())

app.synth()
