"""Tests for flotilla.ledger — module records and the ps table."""

from flotilla.ledger import (
    EXITED,
    LIVENESS_FAILING,
    LIVENESS_UNKNOWN,
    RUNNING,
    STOPPED,
    Ledger,
    ModuleRecord,
    format_ps,
    humanize_since,
)


def _record(name="web", pid=100, **kwargs):
    return ModuleRecord(name=name, kind="Service", pid=pid, log_file_path=f"/tmp/{name}.log", **kwargs)


# ── Ledger ───────────────────────────────────────────────────────


def test_record_and_get_detached_copy():
    ledger = Ledger()
    ledger.record_spawn(_record(environment={"A": "1"}, process=object()))
    copy = ledger.get("web")
    assert copy.status == RUNNING
    assert copy.process is None
    copy.environment["A"] = "2"
    assert ledger.get("web").environment == {"A": "1"}


def test_mark_exited_and_stopped():
    ledger = Ledger()
    ledger.record_spawn(_record("a", pid=1))
    ledger.record_spawn(_record("b", pid=2))
    ledger.mark_exited("a", 1, 3)
    ledger.mark_exited("b", 2, -9, stopped=True)
    assert ledger.get("a").status == EXITED
    assert ledger.get("a").exit_code == 3
    assert ledger.get("b").status == STOPPED


def test_mark_exited_is_idempotent():
    ledger = Ledger()
    ledger.record_spawn(_record(pid=1))
    ledger.mark_exited("web", 1, 0, stopped=True)
    ledger.mark_exited("web", 1, 1)
    record = ledger.get("web")
    assert record.status == STOPPED
    assert record.exit_code == 0


def test_stale_pid_does_not_clobber_replacement():
    ledger = Ledger()
    ledger.record_spawn(_record(pid=1))
    ledger.record_spawn(_record(pid=2))
    ledger.mark_exited("web", 1, 0)
    ledger.set_liveness("web", 1, LIVENESS_FAILING)
    record = ledger.get("web")
    assert record.pid == 2
    assert record.status == RUNNING
    assert record.liveness == LIVENESS_UNKNOWN


def test_liveness_reset_on_exit():
    ledger = Ledger()
    ledger.record_spawn(_record(pid=1))
    ledger.set_liveness("web", 1, LIVENESS_FAILING)
    ledger.mark_exited("web", 1, 0)
    assert ledger.get("web").liveness == LIVENESS_UNKNOWN


def test_snapshot_keeps_deploy_order():
    ledger = Ledger()
    for i, name in enumerate(["db", "api", "worker"]):
        ledger.record_spawn(_record(name, pid=i + 1))
    assert [r.name for r in ledger.snapshot()] == ["db", "api", "worker"]


# ── ps table ─────────────────────────────────────────────────────


def test_humanize_since():
    assert humanize_since(0.4) == "now"
    assert humanize_since(1) == "1 second ago"
    assert humanize_since(5) == "5 seconds ago"
    assert humanize_since(120) == "2 minutes ago"
    assert humanize_since(3600) == "1 hour ago"
    assert humanize_since(2 * 86400) == "2 days ago"


def test_format_ps_header_only():
    assert format_ps([]) == "pid       name      liveness  status    since"


def test_format_ps_rows():
    records = [_record("web", pid=4242, started_at=1000.0)]
    lines = format_ps(records, now=1005.0).splitlines()
    assert lines[1] == "4242      web       -         running   5 seconds ago"


def test_format_ps_long_name_widens_column():
    records = [_record("a-rather-long-name", pid=1, started_at=1000.0)]
    header, row = format_ps(records, now=1000.0).splitlines()
    assert header.startswith("pid       name                liveness  ")
    assert row.startswith("1         a-rather-long-name  -         ")
