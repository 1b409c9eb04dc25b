from typing import Optional

from aws_cdk import (
    CfnOutput,
    Duration,
    Stack,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_iam as iam,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from application.identifiers import normalize_hostname, predict_service_arn
from common import constants
from common.config import DeploymentConfig
from common.exceptions import HealthCheckConfigurationError
from common.handles import (
    DatabaseHandle,
    LoadBalancerHandle,
    NetworkHandle,
    SecretReference,
)
from common.naming import validate_ecs_name, validate_load_balancer_name
from common.stack_context import StackContext


def build_health_check(
    path: str,
    interval_seconds: int = constants.HEALTH_CHECK_INTERVAL_SECONDS,
    timeout_seconds: int = constants.HEALTH_CHECK_TIMEOUT_SECONDS,
) -> elbv2.HealthCheck:
    if interval_seconds <= timeout_seconds:
        raise HealthCheckConfigurationError(
            f"Health check interval ({interval_seconds}s) must be greater than "
            f"its timeout ({timeout_seconds}s)"
        )
    return elbv2.HealthCheck(
        path=path,
        healthy_threshold_count=constants.HEALTHY_THRESHOLD_COUNT,
        unhealthy_threshold_count=constants.UNHEALTHY_THRESHOLD_COUNT,
        interval=Duration.seconds(interval_seconds),
        timeout=Duration.seconds(timeout_seconds),
    )


class AppStack(Stack):
    """The application as an ECS Fargate service behind a load balancer.

    Only handles from the foundation and database stacks are consumed. The
    database credentials arrive as a secret ARN and are resolved by the
    execution role when a task starts.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        network: NetworkHandle,
        database: DatabaseHandle,
        database_credentials: SecretReference,
        container_image: Optional[ecs.ContainerImage] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext.from_config(self, config)
        self.config = config

        # Cluster and service are named explicitly so the service ARN can be
        # predicted before the service exists.
        self.cluster_name = validate_ecs_name(
            self.context.build_resource_name("ecs-cluster"), kind="cluster"
        )
        self.service_name = validate_ecs_name(
            self.context.build_resource_name("ecs-service"), kind="service"
        )
        self.load_balancer_name = validate_load_balancer_name(
            self.context.build_resource_name("ecs-lb")
        )
        health_check = build_health_check(config.health_check_path)
        self.service_arn = predict_service_arn(
            partition=self.context.aws_partition,
            region=self.context.aws_region,
            account=self.context.aws_account_id,
            cluster_name=self.cluster_name,
            service_name=self.service_name,
        )

        # Security groups
        self.alb_security_group = self._build_alb_security_group(network)
        self.service_security_group = self._build_service_security_group(
            network, database
        )

        # IAM roles
        self.task_role = self._build_task_role()

        # Application secrets
        self.signing_key_secret = self._build_generated_secret(
            "SigningKeySecret",
            description="Application signing key",
            length=constants.SIGNING_KEY_LENGTH,
        )
        self.cluster_cookie_secret = self._build_generated_secret(
            "ClusterCookieSecret",
            description="Nodes need to share a secret cookie to cluster",
            length=constants.CLUSTER_COOKIE_LENGTH,
        )
        self.oauth_client_id_secret = self._build_generated_secret(
            "OauthClientIdSecret",
            description="OAuth client ID placeholder, update once the OAuth app exists",
            length=constants.OAUTH_PLACEHOLDER_LENGTH,
        )
        self.oauth_client_secret_secret = self._build_generated_secret(
            "OauthClientSecretSecret",
            description="OAuth client secret placeholder, update once the OAuth app exists",
            length=constants.OAUTH_PLACEHOLDER_LENGTH,
        )
        self.database_credentials_secret = secretsmanager.Secret.from_secret_complete_arn(
            self,
            self.context.build_resource_id("ImportedDatabaseCredentialsSecret"),
            database_credentials.secret_arn,
        )

        self.execution_role = self._build_execution_role(
            [
                self.signing_key_secret,
                self.cluster_cookie_secret,
                self.oauth_client_id_secret,
                self.oauth_client_secret_secret,
                self.database_credentials_secret,
            ]
        )

        # The load balancer exists before the service so its hostname can be
        # baked into the task definition.
        self.load_balancer = self._build_load_balancer(network)
        self.listener = self.load_balancer.add_listener(
            self.context.build_resource_id("EcsLbListener"),
            port=constants.LISTENER_PORT,
            open=False,
        )
        self.public_hostname = self._resolve_public_hostname()

        self.cluster = ecs.Cluster(
            self,
            self.context.build_resource_id("EcsCluster"),
            cluster_name=self.cluster_name,
            vpc=network.vpc,
        )
        self.log_group = self.context.build_log_group("ecs-app")
        self.task_definition = self._build_task_definition(
            container_image or self._default_container_image()
        )
        self.service = self._build_service(network)
        self.target_group = self._build_target_group(health_check)

        self.load_balancer_handle = LoadBalancerHandle(
            load_balancer=self.load_balancer,
            listener_port=constants.LISTENER_PORT,
            health_check_path=config.health_check_path,
        )

        CfnOutput(
            self,
            "LoadBalancerDnsName",
            value=self.load_balancer.load_balancer_dns_name,
        )
        CfnOutput(self, "EcsServiceArn", value=self.service_arn)
        # ARNs only, so an operator can put the real OAuth values in place.
        CfnOutput(
            self,
            "OauthClientIdSecretArn",
            value=self.oauth_client_id_secret.secret_arn,
        )
        CfnOutput(
            self,
            "OauthClientSecretSecretArn",
            value=self.oauth_client_secret_secret.secret_arn,
        )

    # Security groups

    def _build_alb_security_group(self, network: NetworkHandle) -> ec2.SecurityGroup:
        alb_security_group = ec2.SecurityGroup(
            self,
            self.context.build_resource_id("EcsAlbSecurityGroup"),
            vpc=network.vpc,
            description="Control access to the ECS load balancer",
        )
        alb_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(),
            connection=ec2.Port.tcp(constants.LISTENER_PORT),
            description=f"Allow HTTP (TCP/{constants.LISTENER_PORT}) from anywhere",
        )
        return alb_security_group

    def _build_service_security_group(
        self, network: NetworkHandle, database: DatabaseHandle
    ) -> ec2.SecurityGroup:
        service_security_group = ec2.SecurityGroup(
            self,
            self.context.build_resource_id("EcsServiceSecurityGroup"),
            vpc=network.vpc,
            description="Control access to the ECS service",
            allow_all_outbound=False,
        )
        service_security_group.connections.allow_from(
            ec2.Connections(security_groups=[self.alb_security_group]),
            ec2.Port.tcp(constants.CONTAINER_PORT),
            f"Allow TCP/{constants.CONTAINER_PORT} from the load balancer",
        )
        # Cluster membership uses an unpredictable port range.
        service_security_group.add_ingress_rule(
            peer=ec2.Peer.ipv4(network.cidr_block),
            connection=ec2.Port.all_traffic(),
            description="Allow traffic from other nodes in the VPC for clustering",
        )
        service_security_group.add_egress_rule(
            peer=service_security_group,
            connection=ec2.Port.all_traffic(),
            description="Allow traffic to other nodes for clustering",
        )
        # Declared from this side only: the rule resources live in this stack
        # and the database stack is never modified.
        service_security_group.connections.allow_to(
            database.instance,
            ec2.Port.tcp(database.port),
            f"Allow TCP/{database.port} from the ECS service to the database",
        )
        # No NAT in the VPC, so image pulls, secret fetches and logs go out
        # through the task's public IP.
        service_security_group.add_egress_rule(
            peer=ec2.Peer.any_ipv4(),
            connection=ec2.Port.tcp(443),
            description="Allow HTTPS to AWS APIs",
        )
        return service_security_group

    # IAM roles

    def _build_task_role(self) -> iam.Role:
        """Identity of the running process."""
        task_role = iam.Role(
            self,
            self.context.build_resource_id("EcsTaskRole"),
            assumed_by=iam.ServicePrincipal(constants.ECS_TASKS_SERVICE_PRINCIPAL),
        )
        # ECS Exec
        task_role.add_to_principal_policy(
            iam.PolicyStatement(
                actions=[
                    "ssmmessages:CreateControlChannel",
                    "ssmmessages:CreateDataChannel",
                    "ssmmessages:OpenControlChannel",
                    "ssmmessages:OpenDataChannel",
                ],
                resources=["*"],
            )
        )
        # Sibling discovery for clustering
        task_role.add_to_principal_policy(
            iam.PolicyStatement(
                actions=["ecs:ListServices", "ecs:ListTasks", "ecs:DescribeTasks"],
                resources=["*"],
            )
        )
        task_role.add_to_principal_policy(
            iam.PolicyStatement(
                actions=[
                    "logs:CreateLogGroup",
                    "logs:CreateLogStream",
                    "logs:DescribeLogStreams",
                    "logs:PutRetentionPolicy",
                    "logs:PutLogEvents",
                ],
                resources=["arn:aws:logs:*:*:log-group:/*"],
            )
        )
        return task_role

    def _build_execution_role(
        self, secrets: list[secretsmanager.ISecret]
    ) -> iam.Role:
        """Identity used by ECS to pull the image and fetch secrets at task start."""
        execution_role = iam.Role(
            self,
            self.context.build_resource_id("EcsExecutionRole"),
            assumed_by=iam.ServicePrincipal(constants.ECS_TASKS_SERVICE_PRINCIPAL),
        )
        execution_role.add_to_principal_policy(
            iam.PolicyStatement(
                actions=[
                    "ecr:GetAuthorizationToken",
                    "ecr:BatchCheckLayerAvailability",
                    "ecr:GetDownloadUrlForLayer",
                    "ecr:BatchGetImage",
                    "logs:CreateLogStream",
                    "logs:PutLogEvents",
                ],
                resources=["*"],
            )
        )
        execution_role.add_to_principal_policy(
            iam.PolicyStatement(
                actions=["secretsmanager:GetSecretValue"],
                resources=[secret.secret_arn for secret in secrets],
            )
        )
        execution_role.add_to_principal_policy(
            iam.PolicyStatement(actions=["kms:Decrypt"], resources=["*"])
        )
        return execution_role

    # Secrets

    def _build_generated_secret(
        self, resource_type: str, description: str, length: int
    ) -> secretsmanager.Secret:
        return secretsmanager.Secret(
            self,
            self.context.build_resource_id(resource_type),
            description=description,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                exclude_lowercase=False,
                exclude_numbers=False,
                exclude_uppercase=False,
                exclude_punctuation=True,
                include_space=False,
                password_length=length,
            ),
        )

    # Load balancing

    def _build_load_balancer(
        self, network: NetworkHandle
    ) -> elbv2.ApplicationLoadBalancer:
        # Named explicitly: a generated name can contain uppercase letters,
        # which then appear in the DNS name.
        return elbv2.ApplicationLoadBalancer(
            self,
            self.context.build_resource_id("EcsLb"),
            load_balancer_name=self.load_balancer_name,
            vpc=network.vpc,
            internet_facing=True,
            security_group=self.alb_security_group,
        )

    def _resolve_public_hostname(self) -> str:
        if self.config.public_hostname:
            return normalize_hostname(self.config.public_hostname)
        return normalize_hostname(self.load_balancer.load_balancer_dns_name)

    def _build_target_group(
        self, health_check: elbv2.HealthCheck
    ) -> elbv2.ApplicationTargetGroup:
        return self.listener.add_targets(
            self.context.build_resource_id("EcsLbTargetGroup"),
            port=constants.CONTAINER_PORT,
            protocol=elbv2.ApplicationProtocol.HTTP,
            targets=[self.service],
            health_check=health_check,
            deregistration_delay=Duration.seconds(constants.DEREGISTRATION_DELAY_SECONDS),
        )

    # Compute

    def _default_container_image(self) -> ecs.ContainerImage:
        if self.config.container_image_uri:
            return ecs.ContainerImage.from_registry(self.config.container_image_uri)
        return ecs.ContainerImage.from_asset(self.config.app_source_path)

    def _build_task_definition(
        self, container_image: ecs.ContainerImage
    ) -> ecs.FargateTaskDefinition:
        task_definition = ecs.FargateTaskDefinition(
            self,
            self.context.build_resource_id("EcsTaskDefinition"),
            cpu=constants.TASK_CPU,
            memory_limit_mib=constants.TASK_MEMORY_MIB,
            task_role=self.task_role,
            execution_role=self.execution_role,
        )
        task_definition.add_container(
            self.context.build_resource_id("EcsContainer"),
            image=container_image,
            port_mappings=[
                ecs.PortMapping(
                    name=self.context.build_resource_name(
                        f"port-{constants.CONTAINER_PORT}-tcp"
                    ),
                    container_port=constants.CONTAINER_PORT,
                    protocol=ecs.Protocol.TCP,
                    app_protocol=ecs.AppProtocol.http,
                )
            ],
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=self.context.build_resource_name("ecs-app"),
                log_group=self.log_group,
            ),
            environment=self._build_environment(),
            secrets=self._build_container_secrets(),
        )
        return task_definition

    def _build_environment(self) -> dict[str, str]:
        return {
            constants.ENV_PUBLIC_HOST: self.public_hostname,
            constants.ENV_POOL_SIZE: str(self.config.pool_size),
            constants.ENV_CLUSTER_REGION: self.context.aws_region,
            constants.ENV_CLUSTER_NAME: self.cluster_name,
            constants.ENV_SERVICE_ARN: self.service_arn,
            constants.ENV_DB_NAME: constants.DB_NAME,
        }

    def _build_container_secrets(self) -> dict[str, ecs.Secret]:
        # Discrete fields: a composite connection string would need the
        # password duplicated into a second secret.
        database_secret = self.database_credentials_secret
        return {
            constants.ENV_DB_USERNAME: ecs.Secret.from_secrets_manager(database_secret, "username"),
            constants.ENV_DB_PASSWORD: ecs.Secret.from_secrets_manager(database_secret, "password"),
            constants.ENV_DB_HOST: ecs.Secret.from_secrets_manager(database_secret, "host"),
            constants.ENV_DB_PORT: ecs.Secret.from_secrets_manager(database_secret, "port"),
            constants.ENV_SIGNING_KEY: ecs.Secret.from_secrets_manager(self.signing_key_secret),
            constants.ENV_CLUSTER_COOKIE: ecs.Secret.from_secrets_manager(self.cluster_cookie_secret),
            constants.ENV_OAUTH_CLIENT_ID: ecs.Secret.from_secrets_manager(self.oauth_client_id_secret),
            constants.ENV_OAUTH_CLIENT_SECRET: ecs.Secret.from_secrets_manager(
                self.oauth_client_secret_secret
            ),
        }

    def _build_service(self, network: NetworkHandle) -> ecs.FargateService:
        # desired_count starts at 0 and is scaled later without touching the
        # task definition.
        return ecs.FargateService(
            self,
            self.context.build_resource_id("EcsService"),
            service_name=self.service_name,
            cluster=self.cluster,
            task_definition=self.task_definition,
            desired_count=self.config.desired_count,
            security_groups=[self.service_security_group],
            assign_public_ip=True,
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            min_healthy_percent=constants.MIN_HEALTHY_PERCENT,
            max_healthy_percent=constants.MAX_HEALTHY_PERCENT,
            enable_execute_command=True,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
        )
