"""Errors raised while defining or operating the deployment.

Definition-time errors derive from ``ValueError`` and are raised before
``app.synth()`` so no template is ever emitted for an invalid graph.
"""


class DefinitionError(ValueError):
    """The resource graph cannot be defined as requested."""


class NamingConstraintError(DefinitionError):
    pass


class AddressSpaceError(DefinitionError):
    pass


class DatabaseConfigurationError(DefinitionError):
    pass


class HealthCheckConfigurationError(DefinitionError):
    pass


class DependencyViolationError(RuntimeError):
    """A stack was created or torn down out of dependency order."""


class OperationError(RuntimeError):
    """A remote call made on behalf of the operator was rejected."""

    def __init__(self, message: str, code: str = "Unknown", status_code: int = 500):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
