import json
from typing import Any, Mapping

import pytest
from aws_cdk import App
from aws_cdk.assertions import Match, Template

from stack_test_helpers import (
    TEST_ACCOUNT,
    TEST_ENV,
    TEST_REGION,
    ResourceCountCase,
    app_json_template,
    app_template,
    build_config,
    build_test_deployment,
    container_definition,
    container_environment,
    deployment,
    find_logical_id,
    find_resources_by_type,
    policy_actions_for_role,
    render_intrinsic,
)
from governance_checks import (
    assert_generated_secrets_exclude_punctuation,
    assert_no_public_ingress,
)

from application.app_stack import build_health_check
from common import constants
from common.deployment import build_deployment
from common.exceptions import HealthCheckConfigurationError, NamingConstraintError

# ----------------------------- Resource count smoke test ------------------------

RESOURCES = [
    ResourceCountCase("AWS::EC2::SecurityGroup", 2),
    ResourceCountCase("AWS::ECS::Cluster", 1),
    ResourceCountCase("AWS::ECS::Service", 1),
    ResourceCountCase("AWS::ECS::TaskDefinition", 1),
    ResourceCountCase("AWS::ElasticLoadBalancingV2::LoadBalancer", 1),
    ResourceCountCase("AWS::ElasticLoadBalancingV2::Listener", 1),
    ResourceCountCase("AWS::ElasticLoadBalancingV2::TargetGroup", 1),
    ResourceCountCase("AWS::SecretsManager::Secret", 4),
    ResourceCountCase("AWS::IAM::Role", 2),
    ResourceCountCase("AWS::Logs::LogGroup", 1),
]


@pytest.mark.parametrize("case", RESOURCES, ids=lambda case: case.resource_type)
def test_resource_count(app_template: Template, case: ResourceCountCase):
    app_template.resource_count_is(case.resource_type, case.expected)


# ------------------- Security group tests -------------------


def _service_security_group_id(app_template: Template) -> str:
    return find_logical_id(
        app_template, "AWS::EC2::SecurityGroup", "StagingDemoEcsServiceSecurityGroup"
    )


def _alb_security_group_id(app_template: Template) -> str:
    return find_logical_id(
        app_template, "AWS::EC2::SecurityGroup", "StagingDemoEcsAlbSecurityGroup"
    )


def test_edge_security_group_admits_http_from_anywhere(app_template: Template):
    app_template.has_resource_properties(
        "AWS::EC2::SecurityGroup",
        {
            "GroupDescription": "Control access to the ECS load balancer",
            "SecurityGroupIngress": [
                Match.object_like(
                    {
                        "CidrIp": "0.0.0.0/0",
                        "FromPort": 80,
                        "ToPort": 80,
                        "IpProtocol": "tcp",
                    }
                )
            ],
        },
    )
    assert_no_public_ingress(app_template, allowed_ports=(constants.LISTENER_PORT,))


def test_service_admits_container_port_only_from_edge_group(app_template: Template):
    service_sg = _service_security_group_id(app_template)
    alb_sg = _alb_security_group_id(app_template)
    rules = [
        rule["Properties"]
        for rule in find_resources_by_type(app_template, "AWS::EC2::SecurityGroupIngress").values()
        if rule["Properties"]["GroupId"] == {"Fn::GetAtt": [service_sg, "GroupId"]}
    ]
    assert len(rules) == 1
    assert rules[0]["SourceSecurityGroupId"] == {"Fn::GetAtt": [alb_sg, "GroupId"]}
    assert (rules[0]["FromPort"], rules[0]["ToPort"]) == (constants.CONTAINER_PORT, constants.CONTAINER_PORT)
    assert rules[0]["IpProtocol"] == "tcp"


def test_service_admits_all_traffic_from_vpc_block_only(app_template: Template):
    groups = find_resources_by_type(app_template, "AWS::EC2::SecurityGroup")
    inline = groups[_service_security_group_id(app_template)]["Properties"]["SecurityGroupIngress"]
    assert len(inline) == 1
    assert inline[0]["IpProtocol"] == "-1"
    assert "Fn::ImportValue" in inline[0]["CidrIp"]
    assert "CidrBlock" in inline[0]["CidrIp"]["Fn::ImportValue"]


def test_service_reaches_database_only_through_its_own_rules(app_template: Template):
    service_sg = _service_security_group_id(app_template)
    egress_on_db_port = [
        rule["Properties"]
        for rule in find_resources_by_type(app_template, "AWS::EC2::SecurityGroupEgress").values()
        if rule["Properties"].get("FromPort") == constants.DB_PORT
    ]
    assert len(egress_on_db_port) == 1
    assert egress_on_db_port[0]["GroupId"] == {"Fn::GetAtt": [service_sg, "GroupId"]}
    assert egress_on_db_port[0]["ToPort"] == constants.DB_PORT
    assert egress_on_db_port[0]["IpProtocol"] == "tcp"
    assert "Fn::ImportValue" in egress_on_db_port[0]["DestinationSecurityGroupId"]

    groups = find_resources_by_type(app_template, "AWS::EC2::SecurityGroup")
    inline_egress = groups[service_sg]["Properties"]["SecurityGroupEgress"]
    assert all(rule.get("FromPort") != constants.DB_PORT for rule in inline_egress)


def test_database_side_rule_is_declared_in_app_stack(app_template: Template):
    service_sg = _service_security_group_id(app_template)
    app_template.has_resource_properties(
        "AWS::EC2::SecurityGroupIngress",
        {
            "GroupId": {"Fn::ImportValue": Match.string_like_regexp(r".*database-stack.*")},
            "SourceSecurityGroupId": {"Fn::GetAtt": [service_sg, "GroupId"]},
            "FromPort": constants.DB_PORT,
            "ToPort": constants.DB_PORT,
            "IpProtocol": "tcp",
        },
    )


def test_service_outbound_to_internet_is_https_only(app_template: Template):
    groups = find_resources_by_type(app_template, "AWS::EC2::SecurityGroup")
    inline_egress = groups[_service_security_group_id(app_template)]["Properties"]["SecurityGroupEgress"]
    public = [rule for rule in inline_egress if rule.get("CidrIp") == constants.ANY_IPV4_CIDR]
    assert [(rule["FromPort"], rule["ToPort"]) for rule in public] == [(443, 443)]


# ------------------- IAM role tests -------------------


def test_task_role_can_discover_siblings_and_write_logs(
    app_template: Template, app_json_template: Mapping[str, Any]
):
    role_id = find_logical_id(app_template, "AWS::IAM::Role", "StagingDemoEcsTaskRole")
    actions = policy_actions_for_role(app_json_template, role_id)
    assert {
        "ecs:ListServices",
        "ecs:ListTasks",
        "ecs:DescribeTasks",
        "logs:CreateLogStream",
        "logs:PutLogEvents",
        "ssmmessages:OpenDataChannel",
    } <= actions
    assert "secretsmanager:GetSecretValue" not in actions
    assert not any(action.startswith("ecr:") for action in actions)


def test_execution_role_can_pull_images_and_read_secrets(
    app_template: Template, app_json_template: Mapping[str, Any]
):
    role_id = find_logical_id(app_template, "AWS::IAM::Role", "StagingDemoEcsExecutionRole")
    actions = policy_actions_for_role(app_json_template, role_id)
    assert {
        "ecr:GetAuthorizationToken",
        "ecr:BatchGetImage",
        "secretsmanager:GetSecretValue",
        "kms:Decrypt",
    } <= actions
    assert not any(action.startswith("ecs:") for action in actions)


# ------------------- Secrets tests -------------------


def test_generated_secrets(app_template: Template):
    for length in (constants.SIGNING_KEY_LENGTH, constants.OAUTH_PLACEHOLDER_LENGTH):
        app_template.has_resource_properties(
            "AWS::SecretsManager::Secret",
            {"GenerateSecretString": Match.object_like({"PasswordLength": length})},
        )
    assert_generated_secrets_exclude_punctuation(app_template)


def test_container_receives_secrets_by_reference(app_json_template: Mapping[str, Any]):
    secrets = container_definition(app_json_template)["Secrets"]
    assert {secret["Name"] for secret in secrets} == {
        "DB_HOST",
        "DB_PORT",
        "DB_USERNAME",
        "DB_PASSWORD",
        "SECRET_KEY_BASE",
        "RELEASE_COOKIE",
        "LIVE_BEATS_GITHUB_CLIENT_ID",
        "LIVE_BEATS_GITHUB_CLIENT_SECRET",
    }
    assert all("ValueFrom" in secret for secret in secrets)


@pytest.mark.parametrize("name,field", [
    ("DB_HOST", "host"),
    ("DB_PORT", "port"),
    ("DB_USERNAME", "username"),
    ("DB_PASSWORD", "password"),
])
def test_database_fields_resolved_from_imported_secret(
    app_json_template: Mapping[str, Any], name: str, field: str
):
    secrets = {s["Name"]: s["ValueFrom"] for s in container_definition(app_json_template)["Secrets"]}
    value_from = json.dumps(secrets[name])
    assert "Fn::ImportValue" in value_from
    assert f":{field}::" in value_from


# ------------------- Container environment tests -------------------


def test_container_environment(app_template: Template, app_json_template: Mapping[str, Any]):
    environment = container_environment(app_json_template)
    alb_id = find_logical_id(
        app_template, "AWS::ElasticLoadBalancingV2::LoadBalancer", "StagingDemoEcsLb"
    )
    assert environment["PHX_HOST"] == {"Fn::GetAtt": [alb_id, "DNSName"]}
    assert environment["POOL_SIZE"] == "2"
    assert environment["AWS_ECS_CLUSTER_NAME"] == "staging-demo-ecs-cluster"
    assert environment["DB_NAME"] == "postgres"
    assert "AWS_ECS_SERVICE_ARN" in environment
    assert "AWS_ECS_CLUSTER_REGION" in environment


def test_load_balancer_is_named_in_lowercase(app_template: Template):
    app_template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::LoadBalancer",
        {"Name": "staging-demo-ecs-lb", "Scheme": "internet-facing"},
    )


def test_public_hostname_override_is_lowercased():
    deployment = build_test_deployment(
        public_hostname="DEMO-ABC123.example-region.provider.net"
    )
    environment = container_environment(Template.from_stack(deployment.app).to_json())
    assert environment["PHX_HOST"] == "demo-abc123.example-region.provider.net"


# ------------------- Service identifier prediction -------------------


def test_predicted_service_arn_matches_service_names():
    deployment = build_test_deployment(env=TEST_ENV)
    template = Template.from_stack(deployment.app)
    json_template = template.to_json()

    expected = (
        f"arn:aws:ecs:{TEST_REGION}:{TEST_ACCOUNT}:service/"
        "staging-demo-ecs-cluster/staging-demo-ecs-service"
    )
    environment = container_environment(json_template)
    assert render_intrinsic(environment["AWS_ECS_SERVICE_ARN"]) == expected

    template.has_resource_properties(
        "AWS::ECS::Cluster", {"ClusterName": "staging-demo-ecs-cluster"}
    )
    template.has_resource_properties(
        "AWS::ECS::Service", {"ServiceName": "staging-demo-ecs-service"}
    )


def test_predicted_service_arn_is_exported_as_output(app_template: Template):
    app_template.has_output("EcsServiceArn", {})


# ------------------- Service tests -------------------


def test_service_properties(app_template: Template):
    app_template.has_resource_properties(
        "AWS::ECS::Service",
        {
            "DesiredCount": 0,
            "LaunchType": "FARGATE",
            "EnableExecuteCommand": True,
            "DeploymentConfiguration": Match.object_like(
                {
                    "DeploymentCircuitBreaker": {"Enable": True, "Rollback": True},
                    "MaximumPercent": 200,
                    "MinimumHealthyPercent": 50,
                }
            ),
            "NetworkConfiguration": {
                "AwsvpcConfiguration": Match.object_like({"AssignPublicIp": "ENABLED"})
            },
        },
    )


def test_task_definition_properties(app_template: Template):
    app_template.has_resource_properties(
        "AWS::ECS::TaskDefinition",
        {
            "Cpu": "256",
            "Memory": "512",
            "RequiresCompatibilities": ["FARGATE"],
            "ContainerDefinitions": [
                Match.object_like(
                    {
                        "Image": "public.ecr.aws/docker/library/nginx:stable",
                        "PortMappings": [
                            Match.object_like(
                                {
                                    "ContainerPort": 4000,
                                    "Protocol": "tcp",
                                    "AppProtocol": "http",
                                }
                            )
                        ],
                        "LogConfiguration": Match.object_like({"LogDriver": "awslogs"}),
                    }
                )
            ],
        },
    )


def test_log_group_properties(app_template: Template):
    app_template.has_resource_properties(
        "AWS::Logs::LogGroup",
        {"LogGroupName": "/ecs/staging-demo-ecs-app", "RetentionInDays": 30},
    )


# ------------------- Load balancer tests -------------------


def test_target_group_health_check(app_template: Template):
    app_template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::TargetGroup",
        {
            "Port": 4000,
            "Protocol": "HTTP",
            "TargetType": "ip",
            "HealthCheckPath": "/signin",
            "HealthCheckIntervalSeconds": 5,
            "HealthCheckTimeoutSeconds": 3,
            "HealthyThresholdCount": 2,
            "UnhealthyThresholdCount": 2,
            "TargetGroupAttributes": Match.array_with(
                [{"Key": "deregistration_delay.timeout_seconds", "Value": "10"}]
            ),
        },
    )


def test_listener_properties(app_template: Template):
    app_template.has_resource_properties(
        "AWS::ElasticLoadBalancingV2::Listener", {"Port": 80, "Protocol": "HTTP"}
    )


def test_health_check_interval_must_exceed_timeout():
    with pytest.raises(HealthCheckConfigurationError):
        build_health_check("/signin", interval_seconds=3, timeout_seconds=3)


# ------------------- Naming constraints -------------------


def test_load_balancer_name_too_long_aborts_definition():
    config = build_config(stage="production", app_name="a-very-long-application")
    with pytest.raises(NamingConstraintError):
        build_deployment(App(), config)


# ------------------- Outputs -------------------


@pytest.mark.parametrize(
    "output_id", ["LoadBalancerDnsName", "OauthClientIdSecretArn", "OauthClientSecretSecretArn"]
)
def test_operator_outputs(app_template: Template, output_id: str):
    app_template.has_output(output_id, {})


def test_outputs_never_carry_secret_values(app_json_template: Mapping[str, Any]):
    assert "resolve:secretsmanager" not in json.dumps(app_json_template["Outputs"])
