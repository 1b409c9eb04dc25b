import os
from typing import Iterable, Sequence

from attrs import define, field
from aws_cdk import Stack
from aws_lambda_powertools import Logger

from common.exceptions import DependencyViolationError

logger = Logger(service="deployment-graph", level=os.getenv("LOG_LEVEL", "INFO").upper())


@define(slots=True)
class DeploymentGraph:
    """Explicit DAG of stacks.

    Every dependency recorded here is also registered with the CDK so the
    CloudFormation deployment order and the order reported by this graph
    are the same.
    """

    _stacks: dict[str, Stack] = field(factory=dict, init=False)
    _dependencies: dict[str, tuple[str, ...]] = field(factory=dict, init=False)

    def add(self, stack: Stack, depends_on: Sequence[Stack] = ()) -> Stack:
        name = stack.stack_name
        if name in self._stacks:
            raise DependencyViolationError(f"Stack {name} is already registered")
        for dependency in depends_on:
            if dependency.stack_name not in self._stacks:
                raise DependencyViolationError(
                    f"Stack {name} depends on {dependency.stack_name}, "
                    "which has not been defined yet"
                )
            stack.add_dependency(dependency)

        self._stacks[name] = stack
        self._dependencies[name] = tuple(d.stack_name for d in depends_on)
        logger.debug("Registered stack", stack=name, depends_on=list(self._dependencies[name]))
        return stack

    def __contains__(self, name: str) -> bool:
        return name in self._stacks

    def __getitem__(self, name: str) -> Stack:
        return self._stacks[name]

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        return self._dependencies[name]

    def dependents_of(self, name: str) -> tuple[str, ...]:
        return tuple(
            stack for stack, deps in self._dependencies.items() if name in deps
        )

    def creation_order(self) -> list[str]:
        """Leaves first.

        Registration order is already topological because ``add`` rejects
        dependencies on stacks that are not registered yet.
        """
        return list(self._stacks)

    def teardown_order(self) -> list[str]:
        return list(reversed(self.creation_order()))

    def check_teardown(self, name: str, deployed: Iterable[str]) -> None:
        """Fail fast if a still-deployed stack consumes a handle of ``name``."""
        if name not in self._stacks:
            raise KeyError(name)
        still_deployed = set(deployed) - {name}
        blockers = [d for d in self.dependents_of(name) if d in still_deployed]
        if blockers:
            raise DependencyViolationError(
                f"Cannot tear down {name} while {', '.join(sorted(blockers))} "
                "still depends on it"
            )