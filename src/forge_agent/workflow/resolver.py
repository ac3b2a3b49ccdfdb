"""Load and merge workflow documents into one immutable ``Workflow``.

Resolution order:
1. An explicit path is loaded on its own, with no merging.
2. Otherwise the embedded default is loaded and, if ``forge.yaml`` exists
   in the working directory, the project document is merged over it.

Merging works on the raw YAML mappings so that "fields the project
specifies" is observable; validation runs once on the merged result.
"""

from importlib.resources import files
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigError
from ..logging import get_logger
from .models import Workflow

logger = get_logger(__name__)

DEFAULT_WORKFLOW_RESOURCE = "forge.default.yaml"
PROJECT_WORKFLOW_FILE = "forge.yaml"

# top-level mappings merged key by key, project keys winning
_MAPPING_KEYS = ("variables", "templates")


def load_document(path: str | Path) -> dict[str, Any]:
    """Read a workflow YAML file into a mapping.

    Raises:
        ConfigError: Missing file, malformed YAML, or a non-mapping document.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Workflow file not found: {path}", key=str(path))
    except OSError as e:
        raise ConfigError(f"Cannot read workflow file {path}: {e}", key=str(path))
    return parse_document(text, source=str(path))


def parse_document(text: str, source: str = "<string>") -> dict[str, Any]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML in {source}: {e}", key=source)
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigError(f"Workflow {source} must be a mapping at the top level", key=source)
    return document


def load_default_document() -> dict[str, Any]:
    """The workflow shipped with the package."""
    resource = files("forge_agent.workflow").joinpath(DEFAULT_WORKFLOW_RESOURCE)
    return parse_document(resource.read_text(encoding="utf-8"), source=DEFAULT_WORKFLOW_RESOURCE)


def _agent_list(document: dict[str, Any], source: str) -> list[dict[str, Any]]:
    agents = document.get("agents") or []
    if not isinstance(agents, list):
        raise ConfigError(f"'agents' in {source} must be a list", key="agents")
    for index, agent in enumerate(agents):
        if not isinstance(agent, dict):
            raise ConfigError(f"Agent entry {index} in {source} must be a mapping", key=f"agents.{index}")
        if not agent.get("id"):
            raise ConfigError(f"Agent entry {index} in {source} has no id", key=f"agents.{index}.id")
    return agents


def merge_agents(
    default: list[dict[str, Any]],
    project: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Merge agent records by ``id``.

    A project agent whose id exists in the default overrides the fields it
    specifies and inherits the rest; new ids are appended in project order.
    """
    merged = [dict(agent) for agent in default]
    index = {agent["id"]: i for i, agent in enumerate(merged)}
    for agent in project:
        position = index.get(agent["id"])
        if position is None:
            index[agent["id"]] = len(merged)
            merged.append(dict(agent))
        else:
            merged[position] = {**merged[position], **agent}
    return merged


def merge_documents(default: dict[str, Any], project: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge a project workflow document over the default one."""
    merged = dict(default)
    for key, value in project.items():
        if key == "agents":
            merged["agents"] = merge_agents(
                _agent_list(default, "default workflow"),
                _agent_list(project, "project workflow"),
            )
        elif key in _MAPPING_KEYS:
            base = default.get(key) or {}
            if not isinstance(value or {}, dict):
                raise ConfigError(f"'{key}' must be a mapping", key=key)
            merged[key] = {**base, **(value or {})}
        else:
            merged[key] = value
    return merged


def _to_config_error(exc: ValidationError, source: str) -> ConfigError:
    error = exc.errors()[0]
    ctx = error.get("ctx") or {}
    key = ctx.get("token") or ".".join(str(part) for part in error["loc"]) or None
    return ConfigError(f"Invalid workflow {source}: {error['msg']}", key=key)


def build_workflow(document: dict[str, Any], source: str = "workflow") -> Workflow:
    """Validate a raw document into a ``Workflow``.

    Raises:
        ConfigError: Naming the offending key or token.
    """
    _agent_list(document, source)
    try:
        workflow = Workflow.model_validate(document)
    except ValidationError as e:
        raise _to_config_error(e, source)

    for agent in workflow.agents:
        if agent.enable and not agent.is_reachable:
            logger.warning(f"Agent '{agent.id}' subscribes to no events and is unreachable")
    return workflow


class WorkflowResolver:
    """Resolve the session workflow from an explicit path or project + default.

    Args:
        default_document: Override for the embedded default (mostly for tests)
    """

    def __init__(self, default_document: dict[str, Any] | None = None):
        self._default_document = default_document

    def default_document(self) -> dict[str, Any]:
        if self._default_document is None:
            self._default_document = load_default_document()
        return self._default_document

    def resolve(self, explicit_path: str | Path | None = None, cwd: str | Path | None = None) -> Workflow:
        """Build the session workflow.

        Args:
            explicit_path: Workflow file to load standalone
            cwd: Directory searched for ``forge.yaml`` (defaults to process cwd)

        Returns:
            The validated workflow

        Raises:
            ConfigError: Fatal configuration problem
        """
        if explicit_path is not None:
            logger.info(f"Loading workflow from {explicit_path}")
            return build_workflow(load_document(explicit_path), source=str(explicit_path))

        document = self.default_document()
        project_file = Path(cwd if cwd is not None else Path.cwd()) / PROJECT_WORKFLOW_FILE
        if project_file.is_file():
            logger.info(f"Merging project workflow {project_file} over the default")
            document = merge_documents(document, load_document(project_file))
            return build_workflow(document, source=str(project_file))
        return build_workflow(document, source="default workflow")
