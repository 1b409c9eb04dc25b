from aws_cdk import aws_logs as logs

DEFAULT_STAGE = "staging"
DEFAULT_APP_NAME = "live-beats"
DEFAULT_APP_SOURCE_PATH = "../app"

# Stack naming components
COMPONENT_FOUNDATION = "foundation"
COMPONENT_DATABASE = "database"
COMPONENT_APP = "app"
COMPONENT_ROUTING = "routing"

# Network
VPC_CIDR = "10.0.0.0/21"
SUBNET_CIDR_MASK = 23
MAX_AZS = 2
NAT_GATEWAYS = 0
ANY_IPV4_CIDR = "0.0.0.0/0"

# Database
DB_PORT = 5432
DB_USERNAME = "postgres"
DB_NAME = "postgres"
DEFAULT_DB_INSTANCE_TYPE = "t4g.micro"
DB_ALLOCATED_STORAGE_GB = 20
DB_MAX_ALLOCATED_STORAGE_GB = 40
DB_BACKUP_RETENTION_DAYS = 7
SUPPORTED_DB_INSTANCE_FAMILIES = ("t3", "t4g", "m5", "m6g", "m6i", "m7g", "r5", "r6g", "r6i", "r7g")

# Compute
CONTAINER_PORT = 4000
LISTENER_PORT = 80
TASK_CPU = 256
TASK_MEMORY_MIB = 512
DEFAULT_POOL_SIZE = 2
MIN_HEALTHY_PERCENT = 50
MAX_HEALTHY_PERCENT = 200
LOG_RETENTION = logs.RetentionDays.ONE_MONTH

# Target group health check
DEFAULT_HEALTH_CHECK_PATH = "/signin"
HEALTH_CHECK_INTERVAL_SECONDS = 5
HEALTH_CHECK_TIMEOUT_SECONDS = 3
HEALTHY_THRESHOLD_COUNT = 2
UNHEALTHY_THRESHOLD_COUNT = 2
DEREGISTRATION_DELAY_SECONDS = 10

# Global accelerator
ACCELERATOR_HEALTH_CHECK_INTERVAL_SECONDS = 10
ACCELERATOR_HEALTH_CHECK_THRESHOLD = 1
ACCELERATOR_ENDPOINT_WEIGHT = 128

# Generated secrets
SIGNING_KEY_LENGTH = 64
CLUSTER_COOKIE_LENGTH = 64
OAUTH_PLACEHOLDER_LENGTH = 32

# Naming limits
LOAD_BALANCER_NAME_MAX_LENGTH = 32
ECS_NAME_MAX_LENGTH = 255

ECS_TASKS_SERVICE_PRINCIPAL = "ecs-tasks.amazonaws.com"
ECS_SERVICE_ARN_TEMPLATE = (
    "arn:{partition}:ecs:{region}:{account}:service/{cluster_name}/{service_name}"
)

# Application environment surface
ENV_PUBLIC_HOST = "PHX_HOST"
ENV_POOL_SIZE = "POOL_SIZE"
ENV_CLUSTER_REGION = "AWS_ECS_CLUSTER_REGION"
ENV_CLUSTER_NAME = "AWS_ECS_CLUSTER_NAME"
ENV_SERVICE_ARN = "AWS_ECS_SERVICE_ARN"
ENV_DB_NAME = "DB_NAME"
ENV_DB_HOST = "DB_HOST"
ENV_DB_PORT = "DB_PORT"
ENV_DB_USERNAME = "DB_USERNAME"
ENV_DB_PASSWORD = "DB_PASSWORD"
ENV_SIGNING_KEY = "SECRET_KEY_BASE"
ENV_CLUSTER_COOKIE = "RELEASE_COOKIE"
ENV_OAUTH_CLIENT_ID = "LIVE_BEATS_GITHUB_CLIENT_ID"
ENV_OAUTH_CLIENT_SECRET = "LIVE_BEATS_GITHUB_CLIENT_SECRET"
