from aws_cdk import (
    CfnOutput,
    Duration,
    Stack,
    aws_globalaccelerator as globalaccelerator,
    aws_globalaccelerator_endpoints as globalaccelerator_endpoints,
)
from constructs import Construct

from common import constants
from common.config import DeploymentConfig
from common.handles import LoadBalancerHandle
from common.stack_context import StackContext


class RoutingStack(Stack):
    """Global entry point in front of the application load balancer.

    Purely additive: nothing else consumes this stack.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        load_balancer: LoadBalancerHandle,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext.from_config(self, config)

        self.accelerator = globalaccelerator.Accelerator(
            self,
            self.context.build_resource_id("Accelerator"),
            accelerator_name=self.context.build_resource_name("accelerator"),
        )
        self.listener = self.accelerator.add_listener(
            self.context.build_resource_id("AcceleratorListener"),
            client_affinity=globalaccelerator.ClientAffinity.SOURCE_IP,
            port_ranges=[globalaccelerator.PortRange(from_port=load_balancer.listener_port)],
        )
        self.endpoint_group = self.listener.add_endpoint_group(
            self.context.build_resource_id("AcceleratorEndpointGroup"),
            health_check_interval=Duration.seconds(
                constants.ACCELERATOR_HEALTH_CHECK_INTERVAL_SECONDS
            ),
            health_check_path=load_balancer.health_check_path,
            health_check_port=load_balancer.listener_port,
            health_check_protocol=globalaccelerator.HealthCheckProtocol.HTTP,
            health_check_threshold=constants.ACCELERATOR_HEALTH_CHECK_THRESHOLD,
            endpoints=[
                globalaccelerator_endpoints.ApplicationLoadBalancerEndpoint(
                    load_balancer.load_balancer,
                    preserve_client_ip=True,
                    weight=constants.ACCELERATOR_ENDPOINT_WEIGHT,
                )
            ],
        )
        self.public_hostname = self.accelerator.dns_name

        CfnOutput(self, "AcceleratorDnsName", value=self.accelerator.dns_name)
