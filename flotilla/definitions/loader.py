"""Definition loading: YAML documents into typed entities."""

import logging
import os
from dataclasses import dataclass, field

import yaml

from flotilla.definitions.types import (
    DEFAULT_PROBE_RETRIES,
    ENTITY_KINDS,
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
from flotilla.errors import DefinitionError, FlotillaError, UnknownEntity

logger = logging.getLogger(__name__)

DEFINITION_FILE_NAMES = ("flotilla.yml", "flotilla.yaml", ".flotilla.yml", ".flotilla.yaml")

_PROCESS_KEYS = {
    "command",
    "shell",
    "working_dir",
    "environment",
    "environment_sets",
    "log_file_path",
    "termination_signal",
}
_RELATION_KEYS = {"dependencies", "ordered_dependencies", "after", "checks", "post"}

_ALLOWED_KEYS = {
    "Service": {"kind", "name", "readiness_probe", "liveness_probe", "always_await_readiness_probe"}
    | _PROCESS_KEYS
    | _RELATION_KEYS,
    "Task": {"kind", "name", "timeout"} | _PROCESS_KEYS | _RELATION_KEYS,
    "Check": {"kind", "name", "about", "help", "command", "shell", "working_dir", "suggested_fix"},
    "Group": {"kind", "name", "dependencies", "checks"},
    "Shell": {"kind", "service", "type", "command", "shell", "working_dir", "environment"},
}


@dataclass
class DefinitionSet:
    """All known entities, indexed by their unique name."""

    entities: dict[str, Entity] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.entities

    def __len__(self) -> int:
        return len(self.entities)

    def get(self, name: str, referenced_by: str | None = None) -> Entity:
        try:
            return self.entities[name]
        except KeyError:
            raise UnknownEntity(name, referenced_by) from None

    def check(self, name: str, referenced_by: str | None = None) -> Check:
        entity = self.get(name, referenced_by)
        if not isinstance(entity, Check):
            raise DefinitionError(f"'{referenced_by}' lists '{name}' under checks, but it is a {entity.kind}")
        return entity

    def shell_for(self, service: str, shell_type: str = "") -> Shell:
        entity = self.entities.get(shell_name(service, shell_type))
        if not isinstance(entity, Shell):
            raise FlotillaError(f"Failed to find shell for service '{service}'")
        return entity


def _require_str(d: dict, key: str, owner: str, default=None) -> str | None:
    value = d.get(key, default)
    if value is not None and not isinstance(value, str):
        raise DefinitionError(f"'{owner}': field '{key}' must be a string")
    return value


def _str_list(d: dict, key: str, owner: str) -> list[str]:
    value = d.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise DefinitionError(f"'{owner}': field '{key}' must be a list of names")
    return list(value)


def _str_map(value, owner: str, key: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DefinitionError(f"'{owner}': field '{key}' must be a mapping")
    # YAML turns unquoted numbers and booleans into non-strings
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _parse_command(d: dict, owner: str, required=True) -> CommandSpec:
    command = d.get("command")
    shell = d.get("shell")
    if command is not None and shell is not None:
        raise DefinitionError(f"'{owner}': 'command' and 'shell' are mutually exclusive")
    if command is None and shell is None:
        if required:
            raise DefinitionError(f"'{owner}': one of 'command' or 'shell' is required")
        return CommandSpec(working_dir=_require_str(d, "working_dir", owner))
    if command is not None:
        if isinstance(command, str):
            command = [command]
        if not isinstance(command, list) or not command:
            raise DefinitionError(f"'{owner}': 'command' must be a non-empty list")
        command = [str(part) for part in command]
    if shell is not None and not isinstance(shell, str):
        raise DefinitionError(f"'{owner}': 'shell' must be a string")
    return CommandSpec(command=command, shell=shell, working_dir=_require_str(d, "working_dir", owner))


def parse_probe(d, owner: str) -> Probe | None:
    """Build a probe from its tagged mapping (type: exec|net|log_line)."""
    if d is None:
        return None
    if not isinstance(d, dict):
        raise DefinitionError(f"'{owner}': probe must be a mapping")
    retries = d.get("retries", DEFAULT_PROBE_RETRIES)
    if not isinstance(retries, int) or retries < 1:
        raise DefinitionError(f"'{owner}': probe 'retries' must be a positive integer")

    probe_type = d.get("type")
    if probe_type == "exec":
        return ExecProbe(run=_parse_command(d, owner), retries=retries)
    if probe_type == "net":
        port = d.get("port")
        if not isinstance(port, int) or not 0 < port < 65536:
            raise DefinitionError(f"'{owner}': net probe needs a valid 'port'")
        return NetProbe(port=port, host=str(d.get("host", "127.0.0.1")), retries=retries)
    if probe_type == "log_line":
        line_regex = d.get("line_regex")
        if not isinstance(line_regex, str) or not line_regex:
            raise DefinitionError(f"'{owner}': log_line probe needs 'line_regex'")
        return LogLineProbe(line_regex=line_regex, retries=retries)
    raise DefinitionError(f"'{owner}': unknown probe type '{probe_type}'. Expected exec, net or log_line")


def _parse_process(d: dict, owner: str) -> ProcessSpec:
    signal_name = str(d.get("termination_signal", "KILL")).upper()
    if signal_name not in TERMINATION_SIGNALS:
        available = ", ".join(TERMINATION_SIGNALS)
        raise DefinitionError(f"'{owner}': unsupported termination_signal '{signal_name}'. Available: {available}")

    raw_sets = d.get("environment_sets") or {}
    if not isinstance(raw_sets, dict):
        raise DefinitionError(f"'{owner}': field 'environment_sets' must be a mapping")
    environment_sets = {
        str(set_name): _str_map(overlay, owner, f"environment_sets.{set_name}") for set_name, overlay in raw_sets.items()
    }

    return ProcessSpec(
        run=_parse_command(d, owner),
        environment=_str_map(d.get("environment"), owner, "environment"),
        environment_sets=environment_sets,
        log_file_path=_require_str(d, "log_file_path", owner),
        termination_signal=signal_name,
    )


def _parse_shell(doc: dict) -> Shell:
    service = doc.get("service")
    if not isinstance(service, str) or not service:
        raise DefinitionError("A Shell definition is missing its 'service'")
    shell_type = str(doc.get("type") or "")
    name = shell_name(service, shell_type)

    unknown = set(doc) - _ALLOWED_KEYS["Shell"]
    if unknown:
        raise DefinitionError(f"'{name}': unknown field(s) {', '.join(sorted(unknown))}")
    return Shell(
        name=name,
        service=service,
        shell_type=shell_type,
        run=_parse_command(doc, name),
        environment=_str_map(doc.get("environment"), name, "environment"),
    )


def parse_entity(doc: dict) -> Entity:
    """Build one entity from a definition document."""
    if not isinstance(doc, dict):
        raise DefinitionError(f"Definition documents must be mappings, got {type(doc).__name__}")

    kind = doc.get("kind")
    if kind not in ENTITY_KINDS:
        raise DefinitionError(f"Unknown kind '{kind}'. Expected one of: {', '.join(ENTITY_KINDS)}")
    if kind == "Shell":
        return _parse_shell(doc)
    name = doc.get("name")
    if not isinstance(name, str) or not name:
        raise DefinitionError(f"A {kind} definition is missing its 'name'")
    if "/" in name or name.startswith("."):
        raise DefinitionError(f"Invalid name '{name}'")

    unknown = set(doc) - _ALLOWED_KEYS[kind]
    if unknown:
        raise DefinitionError(f"'{name}': unknown field(s) {', '.join(sorted(unknown))}")

    if kind == "Service":
        return Service(
            name=name,
            process=_parse_process(doc, name),
            dependencies=_str_list(doc, "dependencies", name),
            ordered_dependencies=_str_list(doc, "ordered_dependencies", name),
            after=_str_list(doc, "after", name),
            checks=_str_list(doc, "checks", name),
            post=_str_list(doc, "post", name),
            readiness_probe=parse_probe(doc.get("readiness_probe"), name),
            liveness_probe=parse_probe(doc.get("liveness_probe"), name),
            always_await_readiness_probe=bool(doc.get("always_await_readiness_probe", True)),
        )
    if kind == "Task":
        timeout = doc.get("timeout")
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
            raise DefinitionError(f"'{name}': 'timeout' must be a positive number of seconds")
        return Task(
            name=name,
            process=_parse_process(doc, name),
            dependencies=_str_list(doc, "dependencies", name),
            ordered_dependencies=_str_list(doc, "ordered_dependencies", name),
            after=_str_list(doc, "after", name),
            checks=_str_list(doc, "checks", name),
            post=_str_list(doc, "post", name),
            timeout=timeout,
        )
    if kind == "Check":
        fix = doc.get("suggested_fix")
        suggested_fix = None
        if fix is not None:
            if not isinstance(fix, dict) or not isinstance(fix.get("message"), str):
                raise DefinitionError(f"'{name}': 'suggested_fix' needs a 'message'")
            has_run = "command" in fix or "shell" in fix
            suggested_fix = SuggestedFix(
                message=fix["message"],
                run=_parse_command(fix, f"{name}.suggested_fix") if has_run else None,
            )
        return Check(
            name=name,
            about=_require_str(doc, "about", name, default=name),
            help=_require_str(doc, "help", name, default=""),
            run=_parse_command(doc, name),
            suggested_fix=suggested_fix,
        )
    return Group(
        name=name,
        dependencies=_str_list(doc, "dependencies", name),
        checks=_str_list(doc, "checks", name),
    )


def parse_definitions(docs: list) -> DefinitionSet:
    """Build a DefinitionSet, enforcing name uniqueness across all kinds."""
    definitions = DefinitionSet()
    for doc in docs:
        if doc is None:
            continue
        entity = parse_entity(doc)
        if entity.name in definitions:
            raise DefinitionError(f"Duplicate definition name '{entity.name}'")
        definitions.entities[entity.name] = entity
    return definitions


def _resolve_path(value, base_dir: str):
    if not isinstance(value, str):
        return value
    return os.path.normpath(os.path.join(base_dir, os.path.expanduser(value)))


def _resolve_working_dir(d, base_dir: str) -> None:
    if isinstance(d, dict):
        d["working_dir"] = _resolve_path(d.get("working_dir", base_dir), base_dir)


def resolve_document_paths(doc, base_dir: str):
    """Make every path in a definition document absolute.

    Relative paths and ``~`` are resolved against base_dir, the directory
    of the file the document came from. A missing working_dir becomes
    base_dir itself. Exec probes and suggested fixes get the same
    treatment as their owner.
    """
    if not isinstance(doc, dict) or doc.get("kind") == "Group":
        return doc
    _resolve_working_dir(doc, base_dir)
    if "log_file_path" in doc:
        doc["log_file_path"] = _resolve_path(doc["log_file_path"], base_dir)
    for key in ("readiness_probe", "liveness_probe"):
        probe = doc.get(key)
        if isinstance(probe, dict) and probe.get("type") == "exec":
            _resolve_working_dir(probe, base_dir)
    fix = doc.get("suggested_fix")
    if isinstance(fix, dict) and ("command" in fix or "shell" in fix):
        _resolve_working_dir(fix, base_dir)
    return doc


def read_definition_documents(paths: list[str]) -> list[dict]:
    """Read every YAML document from the given files, skipping empty ones.

    Paths inside the documents are resolved against each file's directory,
    so the daemon can run them from anywhere.
    """
    docs = []
    for path in paths:
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Definitions file not found: {path}")
        base_dir = os.path.dirname(os.path.abspath(path))
        with open(path) as f:
            try:
                docs.extend(resolve_document_paths(doc, base_dir) for doc in yaml.safe_load_all(f) if doc is not None)
            except yaml.YAMLError as e:
                raise DefinitionError(f"Error parsing YAML in {path}: {e}") from e
        logger.debug(f"Read definitions from {path}")
    return docs


def find_definition_files(start_dir: str, default_dir: str | None = None) -> list[str]:
    """Locate the definitions file for a directory.

    Walks up from start_dir and returns the first match; falls back to
    default_dir. Returns an empty list when nothing is found.
    """
    current = os.path.abspath(start_dir)
    while True:
        for file_name in DEFINITION_FILE_NAMES:
            candidate = os.path.join(current, file_name)
            if os.path.isfile(candidate):
                return [candidate]
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent

    if default_dir:
        default_dir = os.path.expanduser(default_dir)
        for file_name in DEFINITION_FILE_NAMES:
            candidate = os.path.join(default_dir, file_name)
            if os.path.isfile(candidate):
                return [candidate]
    return []
