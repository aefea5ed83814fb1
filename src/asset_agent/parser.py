# parser.py
# Tolerant extraction of plan JSON from model output.
#
# Models are told to answer with a raw JSON object but regularly wrap it in
# prose or markdown fences. The extractor takes everything from the first
# "{" to the last "}". Unrelated braces in surrounding prose can still
# produce a false block; validation then fails with PlanParseError rather
# than executing something wrong.

import json

from pydantic import ValidationError

from asset_agent.errors import PlanParseError
from asset_agent.models import Plan


def extract_structured_block(text: str | None) -> str | None:
    """
    Return the substring spanning the first '{' and the last '}' in `text`.

    Returns None when no such pair exists. Applying the function to its own
    output returns the same string.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return None
    return text[start : end + 1]


def parse_plan(block: str) -> Plan:
    """
    Deserialize and validate a plan block.

    `originalRequest` may be absent here; the engine fills it in before the
    plan is checkpointed.
    """
    try:
        # strict=False lets literal newlines through inside script contents
        data = json.loads(block, strict=False)
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"Plan JSON is malformed: {exc}") from exc

    if not isinstance(data, dict):
        raise PlanParseError(f"Plan must be a JSON object, got {type(data).__name__}.")
    if "plan" not in data and "steps" not in data:
        raise PlanParseError("Plan object has no 'plan' list.")
    if "steps" in data and "plan" not in data:
        data["plan"] = data.pop("steps")

    try:
        return Plan.model_validate(data)
    except ValidationError as exc:
        raise PlanParseError(f"Plan failed schema validation: {exc}") from exc


def parse_response(text: str | None) -> Plan:
    """Extract the structured block from raw model output and parse it."""
    block = extract_structured_block(text)
    if block is None:
        raise PlanParseError("Model response contained no JSON object.")
    return parse_plan(block)
