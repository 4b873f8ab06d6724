# errors.py
# Exception taxonomy for the proxy deployment orchestrator.
#
# Planning errors (ConfigurationError and subclasses) are raised before the
# chain client is ever touched. Execution errors halt the run where they occur.

from proxy_deploy.models import DeployedModule, ResumeState


class ConfigurationError(Exception):
    """Raised for malformed module specs, duration specs or config files."""


class CyclicDependencyError(ConfigurationError):
    """Raised when the module dependency graph has no topological order."""

    def __init__(self, modules: list[str]) -> None:
        self.modules = modules
        super().__init__(
            "Cyclic dependency between modules: " + ", ".join(modules)
        )


class UnresolvedDependencyError(ConfigurationError):
    """Raised when a module depends on a name that is neither planned nor known."""

    def __init__(self, module: str, dependency: str) -> None:
        self.module = module
        self.dependency = dependency
        super().__init__(
            f"Module '{module}' depends on '{dependency}', "
            "which is not in the plan and has no known address."
        )


class ClientError(Exception):
    """Opaque failure reported by a chain client. Never retried."""


class DeploymentFailedError(Exception):
    """
    Raised when creating a module fails mid-run.

    Modules created before the failure stay on chain. `deployed` lists them in
    order and `resume_state()` returns everything needed to re-run the
    remainder of the plan without creating them again.
    """

    def __init__(
        self,
        module: str,
        position: int,
        total: int,
        cause: Exception,
        deployed: list[DeployedModule],
        known: dict[str, str] | None = None,
    ) -> None:
        self.module = module
        self.position = position
        self.total = total
        self.cause = cause
        self.deployed = deployed
        self._known = dict(known or {})
        super().__init__(
            f"Deployment of '{module}' failed at step {position}/{total}: {cause}"
        )

    def resume_state(self) -> ResumeState:
        addresses = dict(self._known)
        addresses.update({m.name: m.address for m in self.deployed})
        return ResumeState(addresses=addresses)
