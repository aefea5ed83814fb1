# tools.py
# Host capability surface and the built-in tool set.
#
# Host wraps a project directory on disk. Scripts are Python modules; the
# classes they define are the "generated types" assets are created from.
# Types are loaded once, when the Host is constructed, which mirrors the
# host application's hard reload: a script written during this process is
# not instantiable until the next process start.
#
# The engine never calls Host directly. build_registry() binds its methods
# into a CapabilityRegistry and that is the only dispatch path.

import importlib.util
import inspect
import json
import os
import re
import sys
from pathlib import Path

from asset_agent.errors import ToolError
from asset_agent.models import Phase
from asset_agent.registry import CapabilityRegistry

SCRIPTS_DIR = "Scripts"
DOCS_DIR = "GameDesignDocument/03_Game_Systems"

DOCUMENTATION_TOOLS = ("read_file", "update_file", "update_system_doc")


def _slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_") or "system"


class Host:
    """Filesystem-backed host project rooted at `root`."""

    def __init__(self, root: str | os.PathLike[str], scripts_dir: str = SCRIPTS_DIR) -> None:
        self.root = Path(root).resolve()
        self.scripts_dir = self.root / scripts_dir
        self._sources: dict[Path, str] = {}
        self._types: dict[str, type] = self._load_types()

    # ------------------------------------------------------------------
    # Paths and types
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """Project-relative path → absolute path; refuses to leave the project root."""
        if not path or not path.strip():
            raise ToolError("No path provided.")
        target = (self.root / path.strip()).resolve()
        if not target.is_relative_to(self.root):
            raise ToolError(f"Path '{path}' resolves outside the project root.")
        return target

    def _load_types(self) -> dict[str, type]:
        types: dict[str, type] = {}
        if not self.scripts_dir.is_dir():
            return types
        for script in sorted(self.scripts_dir.rglob("*.py")):
            self._sources[script] = script.read_text(encoding="utf-8")
            module_name = f"_asset_agent_script_{script.stem}"
            spec = importlib.util.spec_from_file_location(module_name, script)
            if spec is None or spec.loader is None:
                continue
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except Exception:  # noqa: BLE001
                sys.modules.pop(module_name, None)
                # A script that does not import contributes no types, like a
                # compile error in the host.
                continue
            for name, obj in inspect.getmembers(module, inspect.isclass):
                if obj.__module__ == module_name:
                    types[name] = obj
        return types

    def reload_pending(self) -> bool:
        """True when a script on disk differs from what this Host loaded."""
        if not self.scripts_dir.is_dir():
            return False
        for script in self.scripts_dir.rglob("*.py"):
            if self._sources.get(script) != script.read_text(encoding="utf-8"):
                return True
        return False

    @property
    def type_names(self) -> list[str]:
        return sorted(self._types)

    # ------------------------------------------------------------------
    # Host operations
    # ------------------------------------------------------------------

    def create_text_artifact(self, path: str, content: str) -> Path:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target

    def create_asset(self, type_name: str, asset_path: str) -> Path:
        """
        Instantiate a loaded type and save its public fields as a JSON asset.

        Create-if-absent: an existing asset is left untouched so a re-run
        after a crash does not clobber edits.
        """
        target = self.resolve(asset_path)
        if target.exists():
            return target

        cls = self._types.get(type_name)
        if cls is None:
            raise ToolError(
                f"Type '{type_name}' is not loaded. Its script may not exist yet, "
                "or the host has not reloaded since it was written."
            )
        try:
            instance = cls()
        except Exception as exc:  # noqa: BLE001
            raise ToolError(f"Could not instantiate '{type_name}': {exc}") from exc

        fields = {
            key: value
            for key, value in vars(instance).items()
            if not key.startswith("_")
        }
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps({"type": type_name, "fields": fields}, indent=2, default=str),
            encoding="utf-8",
        )
        return target

    def read_text_artifact(self, path: str) -> str:
        target = self.resolve(path)
        if not target.is_file():
            raise ToolError(f"File not found: {path}")
        return target.read_text(encoding="utf-8")

    def update_text_artifact(self, path: str, content: str) -> Path:
        """Overwrite `path`; falls back to creating it when it does not exist."""
        return self.create_text_artifact(path, content)

    def update_system_doc(self, system_name: str, content: str) -> Path:
        return self.create_text_artifact(f"{DOCS_DIR}/{_slug(system_name)}.md", content)


# ---------------------------------------------------------------------------
# Registry wiring
# ---------------------------------------------------------------------------


def build_registry(host: Host) -> CapabilityRegistry:
    """Register the built-in tools against `host` and freeze the table."""
    registry = CapabilityRegistry()

    @registry.tool(
        "Creates a new script file in the project. Use this for all new classes. "
        "The host reloads after scripts are written.",
        triggers_reload=True,
        produces_artifact=True,
    )
    def create_script(file_path: str, content: str) -> str:
        target = host.create_text_artifact(file_path, content)
        return f"Created script {target.relative_to(host.root)} ({len(content)} chars)."

    @registry.tool(
        "Creates a new asset from a class defined in an existing script.",
        phase=Phase.POST_RESET,
    )
    def create_asset(script_name: str, asset_path: str) -> str:
        target = host.create_asset(script_name, asset_path)
        return f"Asset {target.relative_to(host.root)} is ready."

    @registry.tool("Reads the entire content of an existing text file.")
    def read_file(file_path: str) -> str:
        return host.read_text_artifact(file_path)

    @registry.tool(
        "Overwrites an existing file with new content. Use this to update design "
        "documents or the knowledge base."
    )
    def update_file(file_path: str, new_content: str) -> str:
        target = host.update_text_artifact(file_path, new_content)
        return f"Updated {target.relative_to(host.root)}."

    @registry.tool("Writes the design document for a game system.")
    def update_system_doc(system_name: str, content: str) -> str:
        target = host.update_system_doc(system_name, content)
        return f"Documented '{system_name}' in {target.relative_to(host.root)}."

    registry.freeze()
    return registry

