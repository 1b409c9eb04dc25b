from typing import Optional

from attrs import define
from aws_cdk import App, Environment, aws_ecs as ecs

from application.app_stack import AppStack
from common import constants
from common.config import DeploymentConfig
from common.deployment_graph import DeploymentGraph
from common.stack_context import build_stack_name
from database.database_stack import DatabaseStack
from foundation.foundation_stack import FoundationStack
from routing.routing_stack import RoutingStack


@define(slots=True, frozen=True)
class Deployment:
    graph: DeploymentGraph
    foundation: FoundationStack
    database: DatabaseStack
    app: AppStack
    routing: Optional[RoutingStack] = None


def build_deployment(
    app: App,
    config: DeploymentConfig,
    env: Optional[Environment] = None,
    container_image: Optional[ecs.ContainerImage] = None,
) -> Deployment:
    """Define every stack in dependency order.

    Each constructor only receives handles produced by the constructors that
    ran before it.
    """
    graph = DeploymentGraph()

    foundation = FoundationStack(
        app,
        build_stack_name(config, constants.COMPONENT_FOUNDATION),
        config=config,
        env=env,
    )
    graph.add(foundation)

    database = DatabaseStack(
        app,
        build_stack_name(config, constants.COMPONENT_DATABASE),
        config=config,
        network=foundation.network,
        env=env,
    )
    graph.add(database, depends_on=[foundation])

    app_stack = AppStack(
        app,
        build_stack_name(config, constants.COMPONENT_APP),
        config=config,
        network=foundation.network,
        database=database.database,
        database_credentials=database.credentials,
        container_image=container_image,
        env=env,
    )
    graph.add(app_stack, depends_on=[foundation, database])

    routing = None
    if config.enable_routing:
        routing = RoutingStack(
            app,
            build_stack_name(config, constants.COMPONENT_ROUTING),
            config=config,
            load_balancer=app_stack.load_balancer_handle,
            env=env,
        )
        graph.add(routing, depends_on=[app_stack])

    return Deployment(
        graph=graph,
        foundation=foundation,
        database=database,
        app=app_stack,
        routing=routing,
    )
