# phases.py
# Split a plan around the host's hard reload.
#
# The split is a static property of each capability, never inferred from
# step content, so the same plan always classifies the same way.

from pydantic import BaseModel, Field

from asset_agent.models import Phase, Plan, Step
from asset_agent.registry import CapabilityRegistry


class PhaseSplit(BaseModel):
    pre_reset: list[Step] = Field(default_factory=list)
    post_reset: list[Step] = Field(default_factory=list)

    @property
    def needs_checkpoint(self) -> bool:
        """No pre-reset work means no reload can happen, so nothing to persist."""
        return bool(self.pre_reset)

    @property
    def total(self) -> int:
        return len(self.pre_reset) + len(self.post_reset)


def phase_of(step: Step, registry: CapabilityRegistry) -> Phase:
    # Unknown tools wait for the post-reset phase, where they are reported.
    capability = registry.get(step.tool)
    return capability.phase if capability else Phase.POST_RESET


def classify(plan: Plan, registry: CapabilityRegistry) -> PhaseSplit:
    """Partition plan steps by phase, keeping their relative order."""
    split = PhaseSplit()
    for step in plan.steps:
        if phase_of(step, registry) is Phase.PRE_RESET:
            split.pre_reset.append(step)
        else:
            split.post_reset.append(step)
    return split
