from attrs import define, field
from aws_cdk import RemovalPolicy, Stack, aws_logs as logs
from typing import Optional

import common.constants as constants
from common.config import DeploymentConfig


@define(slots=True, frozen=True)
class StackContext:
    scope: Stack
    stage: str = field(
        default=constants.DEFAULT_STAGE,
        metadata={"description": "Deployment stage (dev, staging, prod)"},
    )
    app_name: str = field(default=constants.DEFAULT_APP_NAME)

    @classmethod
    def from_config(cls, scope: Stack, config: DeploymentConfig) -> "StackContext":
        return cls(scope=scope, stage=config.stage, app_name=config.app_name)

    @property
    def aws_account_id(self) -> str:
        return Stack.of(self.scope).account

    @property
    def aws_region(self) -> str:
        return Stack.of(self.scope).region

    @property
    def aws_partition(self) -> str:
        return Stack.of(self.scope).partition

    # ---------- naming ----------
    def build_resource_name(self, resource_type: str) -> str:
        """Build a physical resource name.

        Examples:
            - ecs-cluster: staging-live-beats-ecs-cluster
            - ecs-lb: staging-live-beats-ecs-lb
        """
        return f"{self.stage}-{self.app_name}-{resource_type}".lower()

    def build_resource_id(self, resource_type: str) -> str:
        """Build a construct ID.

        Examples:
            - EcsCluster: StagingLiveBeatsEcsCluster
        """
        return (
            f"{_pascal(self.stage)}"
            f"{_pascal(self.app_name)}"
            f"{_pascal(resource_type)}"
        )

    def build_log_group(self, resource_type: str) -> logs.LogGroup:
        return logs.LogGroup(
            self.scope,
            self.build_resource_id(f"{resource_type}-LogGroup"),
            log_group_name=f"/ecs/{self.build_resource_name(resource_type)}",
            removal_policy=RemovalPolicy.DESTROY,
            retention=constants.LOG_RETENTION,
        )


def build_stack_name(config: DeploymentConfig, component: str) -> str:
    """Stack names are namespaced so several stages can share an account."""
    return f"{config.stage}-{config.app_name}-{component}-stack"


def _pascal(value: Optional[str]) -> str:
    if not value:
        return ""
    return "".join(part[:1].upper() + part[1:] for part in value.replace("_", "-").split("-"))
