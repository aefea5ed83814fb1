# registry.py
# Capability registry: the single source of truth for what a plan may do.
#
# Each capability carries its dispatch target and the metadata rendered into
# the prompt manifest. The table is built once at process start; invoke() is
# the crash-proof dispatch boundary: nothing a tool does escapes it.

import inspect
from typing import Any, Callable, Iterable

from pydantic import BaseModel, ConfigDict, Field

from asset_agent.errors import RegistryError
from asset_agent.models import Outcome, Phase, Step, StepResult


class Capability(BaseModel):
    """A named host operation the plan executor is permitted to invoke."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: tuple[tuple[str, str], ...] = ()
    phase: Phase = Phase.PRE_RESET
    triggers_reload: bool = Field(
        default=False, description="Running this tool makes the host rebuild and wipe state."
    )
    produces_artifact: bool = Field(
        default=False, description="Successful runs create source that warrants documentation."
    )
    func: Callable[..., Any]


def _type_name(annotation: Any) -> str:
    if annotation is inspect.Parameter.empty:
        return "Any"
    if isinstance(annotation, str):
        return annotation
    return getattr(annotation, "__name__", str(annotation))


def _parameters_of(func: Callable[..., Any]) -> tuple[tuple[str, str], ...]:
    """Ordered (name, type) pairs taken from the function signature."""
    return tuple(
        (name, _type_name(param.annotation))
        for name, param in inspect.signature(func).parameters.items()
        if param.kind not in (param.VAR_POSITIONAL, param.VAR_KEYWORD)
    )


class CapabilityRegistry:
    """
    Name → capability table used both for dispatch and prompt rendering.

    Example:
        registry = CapabilityRegistry()

        @registry.tool("Creates a new script file.", triggers_reload=True)
        def create_script(file_path: str, content: str) -> str:
            ...

        registry.invoke("create_script", {"file_path": "a.py", "content": ""})
    """

    def __init__(self, capabilities: Iterable[Capability] = ()) -> None:
        self._capabilities: dict[str, Capability] = {}
        self._frozen = False
        for capability in capabilities:
            self.register(capability)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, capability: Capability) -> None:
        if self._frozen:
            raise RegistryError(
                f"Cannot register '{capability.name}': the registry is frozen."
            )
        if capability.name in self._capabilities:
            raise RegistryError(f"Capability '{capability.name}' is already registered.")
        self._capabilities[capability.name] = capability

    def tool(
        self,
        description: str,
        *,
        name: str | None = None,
        phase: Phase = Phase.PRE_RESET,
        triggers_reload: bool = False,
        produces_artifact: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of register(); the function itself is returned unchanged."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(
                Capability(
                    name=name or func.__name__,
                    description=description,
                    parameters=_parameters_of(func),
                    phase=phase,
                    triggers_reload=triggers_reload,
                    produces_artifact=produces_artifact,
                    func=func,
                )
            )
            return func

        return decorator

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    def get(self, name: str) -> Capability | None:
        return self._capabilities.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._capabilities)

    def subset(self, names: Iterable[str]) -> "CapabilityRegistry":
        """A new, frozen registry holding only the named capabilities that exist here."""
        scoped = CapabilityRegistry(
            self._capabilities[n] for n in names if n in self._capabilities
        )
        scoped.freeze()
        return scoped

    # ------------------------------------------------------------------
    # Manifest
    # ------------------------------------------------------------------

    def describe(self, names: Iterable[str] | None = None) -> str:
        """Render the prompt manifest, one paragraph per capability."""
        selected = self.names if names is None else [n for n in names if n in self]
        paragraphs: list[str] = []
        for capability in (self._capabilities[n] for n in selected):
            lines = [
                f"Tool: {capability.name}",
                f"Description: {capability.description}",
                "Arguments:",
            ]
            lines.extend(f"  - {pname} ({ptype})" for pname, ptype in capability.parameters)
            paragraphs.append("\n".join(lines))
        return "\n\n".join(paragraphs)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> StepResult:
        """
        Look up `name` and call it with `arguments`.

        Never raises: unknown tools, bad arguments and tool exceptions all
        come back as a FAILURE result so sibling steps keep running.
        """
        return self.run_step(Step(tool=name, arguments=arguments or {}))

    def run_step(self, step: Step) -> StepResult:
        """invoke() for a plan step; the result carries the step unchanged."""
        name = step.tool
        capability = self._capabilities.get(name)
        if capability is None:
            return StepResult(
                step=step,
                outcome=Outcome.FAILURE,
                detail=f"Unknown tool '{name}'. Registered tools: {', '.join(self.names) or 'none'}.",
            )

        try:
            bound = inspect.signature(capability.func).bind(**step.arguments)
        except TypeError as exc:
            return StepResult(
                step=step,
                outcome=Outcome.FAILURE,
                detail=f"Invalid arguments for '{name}': {exc}",
            )

        try:
            value = capability.func(*bound.args, **bound.kwargs)
        except Exception as exc:  # noqa: BLE001
            return StepResult(
                step=step,
                outcome=Outcome.FAILURE,
                detail=f"{type(exc).__name__}: {exc}",
            )

        detail = f"{name} completed." if value is None else str(value)
        return StepResult(step=step, outcome=Outcome.SUCCESS, detail=detail)
