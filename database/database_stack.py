import json

from aws_cdk import (
    Duration,
    Stack,
    aws_ec2 as ec2,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from common import constants
from common.config import DeploymentConfig
from common.exceptions import DatabaseConfigurationError
from common.handles import DatabaseHandle, NetworkHandle, SecretReference
from common.stack_context import StackContext


def build_instance_type(instance_class: str) -> ec2.InstanceType:
    """Resolve a ``family.size`` class the PostgreSQL engine can run on."""
    family, _, size = instance_class.removeprefix("db.").partition(".")
    if not size or family not in constants.SUPPORTED_DB_INSTANCE_FAMILIES:
        raise DatabaseConfigurationError(
            f"Instance class '{instance_class}' is not supported for PostgreSQL, "
            f"expected one of the families {', '.join(constants.SUPPORTED_DB_INSTANCE_FAMILIES)}"
        )
    return ec2.InstanceType(f"{family}.{size}")


class DatabaseStack(Stack):
    """Managed PostgreSQL and its credentials secret.

    The security group is created without ingress rules. The application
    stack adds its own path to the database from its side, because an
    ingress rule here would have to name a security group that does not
    exist yet.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: DeploymentConfig,
        network: NetworkHandle,
        **kwargs,
    ) -> None:
        instance_type = build_instance_type(config.database_instance_type)
        super().__init__(scope, construct_id, **kwargs)
        self.context = StackContext.from_config(self, config)
        self.port = config.database_port

        self.security_group = self._build_security_group(network)
        self.credentials_secret = self._build_credentials_secret()
        instance = self._build_database(network, instance_type)

        self.database = DatabaseHandle(instance=instance, port=self.port)
        self.credentials = SecretReference(secret_arn=self.credentials_secret.secret_arn)

    def _build_security_group(self, network: NetworkHandle) -> ec2.SecurityGroup:
        return ec2.SecurityGroup(
            self,
            self.context.build_resource_id("DatabaseSecurityGroup"),
            vpc=network.vpc,
            description="Control access to the database",
        )

    def _build_credentials_secret(self) -> secretsmanager.Secret:
        return secretsmanager.Secret(
            self,
            self.context.build_resource_id("DatabaseCredentialsSecret"),
            description="Database main user credentials",
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=json.dumps({"username": constants.DB_USERNAME}),
                generate_string_key="password",
                exclude_punctuation=True,
                include_space=False,
            ),
        )

    def _build_database(
        self, network: NetworkHandle, instance_type: ec2.InstanceType
    ) -> rds.DatabaseInstance:
        return rds.DatabaseInstance(
            self,
            self.context.build_resource_id("Database"),
            vpc=network.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.VER_16
            ),
            instance_type=instance_type,
            port=self.port,
            multi_az=False,
            allow_major_version_upgrade=True,
            auto_minor_version_upgrade=True,
            allocated_storage=constants.DB_ALLOCATED_STORAGE_GB,
            max_allocated_storage=constants.DB_MAX_ALLOCATED_STORAGE_GB,
            delete_automated_backups=False,
            backup_retention=Duration.days(constants.DB_BACKUP_RETENTION_DAYS),
            security_groups=[self.security_group],
            publicly_accessible=False,
            credentials=rds.Credentials.from_secret(self.credentials_secret),
        )
