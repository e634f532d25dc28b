"""Definition model: typed entities parsed from YAML documents."""

from flotilla.definitions.loader import (
    DefinitionSet,
    find_definition_files,
    parse_definitions,
    parse_entity,
    parse_probe,
    read_definition_documents,
    resolve_document_paths,
)
from flotilla.definitions.types import (
    TERMINATION_SIGNALS,
    Check,
    CommandSpec,
    Entity,
    ExecProbe,
    Group,
    LogLineProbe,
    NetProbe,
    Probe,
    ProcessSpec,
    Service,
    Shell,
    SuggestedFix,
    Task,
    shell_name,
)

__all__ = [
    "TERMINATION_SIGNALS",
    "Check",
    "CommandSpec",
    "DefinitionSet",
    "Entity",
    "ExecProbe",
    "Group",
    "LogLineProbe",
    "NetProbe",
    "Probe",
    "ProcessSpec",
    "Service",
    "Shell",
    "SuggestedFix",
    "Task",
    "find_definition_files",
    "parse_definitions",
    "parse_entity",
    "parse_probe",
    "read_definition_documents",
    "resolve_document_paths",
    "shell_name",
]
