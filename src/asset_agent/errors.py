# errors.py
# Exception taxonomy shared by every layer of the agent.
#
# BackendError and PlanParseError end a run. ToolError is recorded per step
# and never crosses the registry's dispatch boundary. PersistenceError is
# always fatal for the current run.


class AgentError(Exception):
    """Base class for all agent failures."""


class BackendError(AgentError):
    """Raised when the model backend fails or answers unsuccessfully."""


class PlanParseError(AgentError):
    """Raised when model output has no structured block or fails validation."""


class ToolError(AgentError):
    """Raised by a capability when its host operation cannot be completed."""


class PersistenceError(AgentError):
    """Raised when the checkpoint cannot be written, read or removed."""


class RegistryError(AgentError):
    """Raised on duplicate or late capability registration."""
