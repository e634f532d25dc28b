"""Tests for flotilla.definitions — parsing definition documents into entities."""

import signal

import pytest

from flotilla.definitions import (
    Check,
    ExecProbe,
    Group,
    LogLineProbe,
    NetProbe,
    Service,
    Shell,
    Task,
    find_definition_files,
    parse_definitions,
    parse_entity,
    parse_probe,
    read_definition_documents,
)
from flotilla.errors import DefinitionError, FlotillaError, UnknownEntity


# ── entities ────────────────────────────────────────────────────


def test_parse_service_full():
    service = parse_entity(
        {
            "kind": "Service",
            "name": "api",
            "shell": "python -m http.server 8000",
            "working_dir": "~/src/api",
            "environment": {"PORT": 8000, "DEBUG": True},
            "environment_sets": {"dev": {"DEBUG": "1"}},
            "dependencies": ["db"],
            "ordered_dependencies": ["a", "b"],
            "after": ["migrate"],
            "checks": ["docker"],
            "post": ["seed"],
            "termination_signal": "term",
            "readiness_probe": {"type": "net", "port": 8000},
            "liveness_probe": {"type": "exec", "command": ["curl", "-f", "localhost:8000"], "retries": 2},
            "always_await_readiness_probe": False,
        }
    )
    assert isinstance(service, Service)
    assert service.process.run.shell == "python -m http.server 8000"
    assert service.process.run.working_dir == "~/src/api"
    assert service.process.environment == {"PORT": "8000", "DEBUG": "True"}
    assert service.process.environment_sets == {"dev": {"DEBUG": "1"}}
    assert service.process.signal == signal.SIGTERM
    assert service.readiness_probe == NetProbe(port=8000)
    assert isinstance(service.liveness_probe, ExecProbe)
    assert service.liveness_probe.retries == 2
    assert service.always_await_readiness_probe is False


def test_parse_service_defaults():
    service = parse_entity({"kind": "Service", "name": "web", "command": ["sleep", "60"]})
    assert service.process.termination_signal == "KILL"
    assert service.process.signal == signal.SIGKILL
    assert service.readiness_probe is None
    assert service.always_await_readiness_probe is True
    assert service.process.run.display == "sleep 60"


def test_parse_task_timeout():
    task = parse_entity({"kind": "Task", "name": "migrate", "shell": "true", "timeout": 30})
    assert isinstance(task, Task)
    assert task.timeout == 30


@pytest.mark.parametrize("timeout", [0, -1, "soon", True])
def test_parse_task_bad_timeout(timeout):
    with pytest.raises(DefinitionError, match="timeout"):
        parse_entity({"kind": "Task", "name": "t", "shell": "true", "timeout": timeout})


def test_parse_check_with_suggested_fix():
    check = parse_entity(
        {
            "kind": "Check",
            "name": "docker",
            "about": "Docker daemon",
            "help": "Start docker",
            "shell": "docker info",
            "suggested_fix": {"message": "Start it", "shell": "systemctl start docker"},
        }
    )
    assert isinstance(check, Check)
    assert check.about == "Docker daemon"
    assert check.suggested_fix.message == "Start it"
    assert check.suggested_fix.run.shell == "systemctl start docker"


def test_parse_group():
    group = parse_entity({"kind": "Group", "name": "backend", "dependencies": ["api", "db"]})
    assert group == Group(name="backend", dependencies=["api", "db"])


def test_parse_shell_named_after_service():
    shell = parse_entity({"kind": "Shell", "service": "db", "shell": "psql", "environment": {"PGPORT": 5432}})
    assert isinstance(shell, Shell)
    assert shell.name == "db-service-shell"
    assert shell.run.shell == "psql"
    assert shell.environment == {"PGPORT": "5432"}
    assert parse_entity({"kind": "Shell", "service": "db", "type": "admin", "command": ["bash"]}).name == (
        "db-admin-service-shell"
    )


def test_shell_for_service():
    definitions = parse_definitions(
        [
            {"kind": "Service", "name": "db", "shell": "sleep 60"},
            {"kind": "Shell", "service": "db", "shell": "psql"},
            {"kind": "Shell", "service": "db", "type": "admin", "shell": "psql -U admin"},
        ]
    )
    assert definitions.shell_for("db").run.shell == "psql"
    assert definitions.shell_for("db", "admin").run.shell == "psql -U admin"
    with pytest.raises(FlotillaError, match="Failed to find shell for service 'web'"):
        definitions.shell_for("web")


# ── validation ──────────────────────────────────────────────────


@pytest.mark.parametrize(
    "doc, message",
    [
        ({"kind": "Pod", "name": "x"}, "Unknown kind"),
        ({"kind": "Service", "shell": "true"}, "missing its 'name'"),
        ({"kind": "Service", "name": "a/b", "shell": "true"}, "Invalid name"),
        ({"kind": "Service", "name": "x"}, "one of 'command' or 'shell'"),
        ({"kind": "Service", "name": "x", "shell": "true", "command": ["true"]}, "mutually exclusive"),
        ({"kind": "Service", "name": "x", "shell": "true", "colour": "red"}, "unknown field"),
        ({"kind": "Service", "name": "x", "shell": "true", "termination_signal": "HUP"}, "termination_signal"),
        ({"kind": "Service", "name": "x", "shell": "true", "dependencies": "db"}, "list of names"),
        ({"kind": "Group", "name": "g", "shell": "true"}, "unknown field"),
        ({"kind": "Shell", "shell": "bash"}, "missing its 'service'"),
        ({"kind": "Shell", "service": "db"}, "one of 'command' or 'shell'"),
        ({"kind": "Shell", "service": "db", "shell": "bash", "name": "x"}, "unknown field"),
    ],
)
def test_parse_entity_errors(doc, message):
    with pytest.raises(DefinitionError, match=message):
        parse_entity(doc)


def test_duplicate_names_rejected():
    with pytest.raises(DefinitionError, match="Duplicate"):
        parse_definitions(
            [
                {"kind": "Service", "name": "x", "shell": "true"},
                {"kind": "Task", "name": "x", "shell": "true"},
            ]
        )


def test_definition_set_lookup():
    definitions = parse_definitions([None, {"kind": "Service", "name": "x", "shell": "true"}])
    assert len(definitions) == 1
    assert "x" in definitions
    with pytest.raises(UnknownEntity, match="Unknown entity 'y' \\(referenced by 'x'\\)"):
        definitions.get("y", referenced_by="x")


def test_checks_must_reference_checks():
    definitions = parse_definitions([{"kind": "Service", "name": "x", "shell": "true"}])
    with pytest.raises(DefinitionError, match="under checks"):
        definitions.check("x", referenced_by="y")


# ── probes ──────────────────────────────────────────────────────


def test_parse_probe_kinds():
    assert parse_probe(None, "x") is None
    assert parse_probe({"type": "log_line", "line_regex": "ready"}, "x") == LogLineProbe(line_regex="ready")
    assert parse_probe({"type": "net", "port": 80, "host": "localhost"}, "x").host == "localhost"
    assert parse_probe({"type": "exec", "shell": "true"}, "x").retries == 5


@pytest.mark.parametrize(
    "probe",
    [
        {"type": "http", "port": 80},
        {"type": "net"},
        {"type": "net", "port": 70000},
        {"type": "log_line"},
        {"type": "exec"},
        {"type": "exec", "shell": "true", "retries": 0},
    ],
)
def test_parse_probe_errors(probe):
    with pytest.raises(DefinitionError):
        parse_probe(probe, "x")


# ── files ───────────────────────────────────────────────────────


def test_read_multi_document_file(tmp_path):
    path = tmp_path / "flotilla.yml"
    path.write_text(
        "kind: Service\nname: web\nshell: sleep 60\n---\n---\nkind: Task\nname: migrate\ncommand: [true]\n"
    )
    docs = read_definition_documents([str(path)])
    assert [d["name"] for d in docs] == ["web", "migrate"]


def test_read_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_definition_documents([str(tmp_path / "missing.yml")])


def test_read_invalid_yaml(tmp_path):
    path = tmp_path / "flotilla.yml"
    path.write_text("kind: [Service\n")
    with pytest.raises(DefinitionError, match="Error parsing YAML"):
        read_definition_documents([str(path)])


def test_read_resolves_paths_against_file_dir(tmp_path, monkeypatch):
    tmp_path = tmp_path.resolve()
    project = tmp_path / "project"
    project.mkdir()
    path = project / "flotilla.yml"
    path.write_text(
        "kind: Service\nname: web\nshell: sleep 60\nworking_dir: app\nlog_file_path: logs/web.log\n"
        "readiness_probe: {type: exec, shell: 'true', working_dir: ../other}\n"
        "liveness_probe: {type: net, port: 8000}\n"
        "---\nkind: Check\nname: docker\nshell: 'true'\n"
        "suggested_fix: {message: start it, shell: 'true', working_dir: '~/fix'}\n"
        "---\nkind: Group\nname: all\ndependencies: [web]\n"
    )
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)

    web, docker, group = read_definition_documents(["project/flotilla.yml"])
    assert web["working_dir"] == str(project / "app")
    assert web["log_file_path"] == str(project / "logs" / "web.log")
    assert web["readiness_probe"]["working_dir"] == str(tmp_path / "other")
    assert "working_dir" not in web["liveness_probe"]
    assert docker["working_dir"] == str(project)
    assert docker["suggested_fix"]["working_dir"] == str(tmp_path / "home" / "fix")
    assert "working_dir" not in group
    assert parse_definitions([web, docker, group]).get("web").process.run.working_dir == str(project / "app")


def test_read_keeps_absolute_paths(tmp_path):
    path = tmp_path / "flotilla.yml"
    path.write_text("kind: Task\nname: t\nshell: 'true'\nworking_dir: /srv/app\n")
    assert read_definition_documents([str(path)])[0]["working_dir"] == "/srv/app"


def test_find_definition_file_walks_up(tmp_path):
    (tmp_path / ".flotilla.yaml").write_text("")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    assert find_definition_files(str(nested)) == [str(tmp_path / ".flotilla.yaml")]


def test_find_definition_file_prefers_closest(tmp_path):
    (tmp_path / "flotilla.yml").write_text("")
    nested = tmp_path / "a"
    nested.mkdir()
    (nested / "flotilla.yaml").write_text("")
    assert find_definition_files(str(nested)) == [str(nested / "flotilla.yaml")]


def test_find_definition_file_default_dir(tmp_path):
    default_dir = tmp_path / "defaults"
    default_dir.mkdir()
    (default_dir / "flotilla.yml").write_text("")
    start = tmp_path / "elsewhere"
    start.mkdir()
    found = find_definition_files(str(start), default_dir=str(default_dir))
    assert found == [str(default_dir / "flotilla.yml")]
