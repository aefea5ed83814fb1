# prompts.py
# Prompt construction for plan generation and the chained documentation pass.

from asset_agent.models import StepResult

PLAN_EXAMPLE = """\
{
  "plan": [
    {
      "tool": "create_script",
      "arguments": {
        "file_path": "Scripts/ship_module.py",
        "content": "class ShipModule:\\n    def __init__(self):\\n        self.mass = 1.0\\n"
      },
      "description": "Create the ShipModule class."
    },
    {
      "tool": "create_asset",
      "arguments": {
        "script_name": "ShipModule",
        "asset_path": "Assets/Modules/default_module.json"
      },
      "description": "Create a default ShipModule asset."
    }
  ]
}"""

AGENTIC_PREAMBLE = """\
You are an expert game development agent. Your task is to analyze a user's \
request and create a step-by-step plan to fulfill it using a predefined set \
of tools.

Your response MUST be a single, raw JSON object with a "plan" list. Each \
entry has the keys "tool", "arguments" and "description". Do not include any \
conversational text or Markdown fences. Your entire response must be only the \
JSON object.

Scripts are Python modules. Assets can only be created from classes in \
scripts; scripts created in this plan become available after the host \
reloads, which happens automatically between the two halves of the plan.

Example:
"""

DOCUMENTATION_PREAMBLE = """\
You are an expert technical writer AI. Your task is to document the newly \
created scripts.

Your response MUST be a single, raw JSON object with a "plan" list, using \
the same "tool", "arguments" and "description" keys as before. Only the tools \
listed below are available.
"""

DOCUMENTATION_TASK = """\
Generate the JSON plan to document the new scripts. Use 'update_system_doc' \
to write design documentation for the relevant system (e.g. 'Ship Module \
System'). Use 'update_file' to update 'ai_knowledgebase.json' with a summary \
of the new classes and their fields."""

MAX_CONTEXT_CHARS = 4000


def _clip(text: str, max_len: int = MAX_CONTEXT_CHARS) -> str:
    return text if len(text) <= max_len else text[:max_len] + "..."


def build_agentic_prompt(manifest: str, request: str, history: str = "") -> str:
    """Manifest, prior conversation and the current request, in that order."""
    parts = [
        AGENTIC_PREAMBLE,
        PLAN_EXAMPLE,
        "\n--- AVAILABLE TOOLS ---",
        manifest,
        "\n--- CHAT HISTORY ---",
        history or "(none)",
        "\n--- USER'S CURRENT REQUEST ---",
        request,
        "\n--- YOUR TASK ---",
        "Generate the JSON plan now, strictly following the format of the example.",
    ]
    return "\n".join(parts)


def build_documentation_prompt(
    manifest: str,
    original_request: str,
    created_files: dict[str, str],
    failures: list[StepResult] | None = None,
) -> str:
    """Follow-up prompt for documenting what the first plan created."""
    parts = [
        DOCUMENTATION_PREAMBLE,
        "\n--- AVAILABLE TOOLS ---",
        manifest,
        "\n--- ORIGINAL USER REQUEST ---",
        original_request,
        "\n--- NEWLY CREATED SCRIPTS ---",
    ]
    for path, content in created_files.items():
        parts.append(f"--- FILE: {path} ---")
        parts.append("```python")
        parts.append(_clip(content))
        parts.append("```")

    if failures:
        parts.append("\n--- STEPS THAT FAILED ---")
        for result in failures:
            parts.append(f"- {result.step.tool}: {_clip(result.detail, 500)}")
        parts.append("Do not document anything that failed to be created.")

    parts.append("\n--- YOUR TASK ---")
    parts.append(DOCUMENTATION_TASK)
    return "\n".join(parts)
