import ipaddress

from aws_cdk import (
    CfnOutput,
    Stack,
    aws_ec2 as ec2,
)
from constructs import Construct

from common import constants
from common.config import DeploymentConfig
from common.exceptions import AddressSpaceError
from common.handles import NetworkHandle
from common.stack_context import StackContext

SUBNET_TIERS = (
    ("public", ec2.SubnetType.PUBLIC),
    ("private", ec2.SubnetType.PRIVATE_ISOLATED),
)


def validate_address_space(
    vpc_cidr: str, cidr_mask: int, max_azs: int, tier_count: int = len(SUBNET_TIERS)
) -> None:
    """Fail before any remote call if the tiers cannot fit in the VPC block."""
    network = ipaddress.ip_network(vpc_cidr)
    if cidr_mask < network.prefixlen:
        raise AddressSpaceError(
            f"Subnet mask /{cidr_mask} is larger than the VPC block {vpc_cidr}"
        )
    required = tier_count * max_azs * 2 ** (32 - cidr_mask)
    if required > network.num_addresses:
        raise AddressSpaceError(
            f"{tier_count} tiers x {max_azs} AZs of /{cidr_mask} need {required} "
            f"addresses, {vpc_cidr} only has {network.num_addresses}"
        )


class FoundationStack(Stack):

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        vpc_cidr: str = constants.VPC_CIDR,
        cidr_mask: int = constants.SUBNET_CIDR_MASK,
        max_azs: int = constants.MAX_AZS,
        **kwargs,
    ) -> None:
        validate_address_space(vpc_cidr, cidr_mask, max_azs)
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext.from_config(self, config)

        vpc = self.create_vpc(vpc_cidr, cidr_mask, max_azs)
        self.network = NetworkHandle(vpc=vpc)

        CfnOutput(self, "VpcId", value=vpc.vpc_id)

    def create_vpc(self, vpc_cidr: str, cidr_mask: int, max_azs: int) -> ec2.Vpc:
        # No NAT: the private tier has no outbound internet path.
        return ec2.Vpc(
            self,
            self.context.build_resource_id("Vpc"),
            vpc_name=self.context.build_resource_name("vpc"),
            ip_addresses=ec2.IpAddresses.cidr(vpc_cidr),
            nat_gateways=constants.NAT_GATEWAYS,
            max_azs=max_azs,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name=name,
                    subnet_type=subnet_type,
                    cidr_mask=cidr_mask,
                )
                for name, subnet_type in SUBNET_TIERS
            ],
        )
