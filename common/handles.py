"""Typed handles exchanged between stacks.

A stack constructor only accepts handles produced by the constructors of the
stacks it depends on, so evaluation order follows from the call graph. No
stack reaches into another stack's attributes beyond these.
"""
from attrs import define, field
from attrs.validators import ge, instance_of
from aws_cdk import (
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
    aws_rds as rds,
)


@define(slots=True, frozen=True)
class NetworkHandle:
    vpc: ec2.IVpc

    @property
    def cidr_block(self) -> str:
        return self.vpc.vpc_cidr_block


@define(slots=True, frozen=True)
class DatabaseHandle:
    instance: rds.IDatabaseInstance
    port: int = field(validator=ge(1))


@define(slots=True, frozen=True)
class SecretReference:
    """Identifier of a secret. The value is only ever fetched at runtime."""

    secret_arn: str = field(validator=instance_of(str))


@define(slots=True, frozen=True)
class LoadBalancerHandle:
    load_balancer: elbv2.IApplicationLoadBalancer
    listener_port: int
    health_check_path: str
