"""Workflow definition: models, the embedded default, and the resolver."""

from .models import AgentDefinition, Workflow
from .resolver import (
    PROJECT_WORKFLOW_FILE,
    WorkflowResolver,
    build_workflow,
    load_document,
    merge_documents,
)

__all__ = [
    "AgentDefinition",
    "PROJECT_WORKFLOW_FILE",
    "Workflow",
    "WorkflowResolver",
    "build_workflow",
    "load_document",
    "merge_documents",
]
