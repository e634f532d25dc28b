"""Tests for the logs and exec command helpers."""

import asyncio

from flotilla.commands.exec import run_in_module
from flotilla.commands.logs import follow, tail_lines


# ── logs ────────────────────────────────────────────────────────


def test_tail_lines_all_and_last_n(tmp_path):
    path = tmp_path / "svc.log"
    path.write_text("one\ntwo\nthree\n")
    assert tail_lines(str(path), None) == (["one", "two", "three"], 14)
    assert tail_lines(str(path), 2)[0] == ["two", "three"]
    assert tail_lines(str(path), 0)[0] == []


def test_follow_prints_appended_lines(tmp_path):
    path = tmp_path / "svc.log"
    path.write_text("old\n")
    seen = []

    async def scenario():
        watcher = asyncio.create_task(follow(str(path), path.stat().st_size, seen.append, poll_interval=0.02))
        await asyncio.sleep(0.05)
        with open(path, "a") as f:
            f.write("new 1\nnew ")
        await asyncio.sleep(0.1)
        with open(path, "a") as f:
            f.write("2\n")
        await asyncio.sleep(0.1)
        watcher.cancel()

    asyncio.run(scenario())
    assert seen == ["new 1", "new 2"]


def test_follow_restarts_after_truncation(tmp_path):
    path = tmp_path / "svc.log"
    path.write_text("a long line from the previous run\n")
    seen = []

    async def scenario():
        watcher = asyncio.create_task(follow(str(path), path.stat().st_size, seen.append, poll_interval=0.02))
        await asyncio.sleep(0.05)
        path.write_text("fresh\n")
        await asyncio.sleep(0.1)
        watcher.cancel()

    asyncio.run(scenario())
    assert seen == ["fresh"]


# ── exec ────────────────────────────────────────────────────────


def test_run_in_module_uses_environment_and_working_dir(tmp_path):
    out = tmp_path / "out"
    record = {"environment": {"GREETING": "hi"}, "working_dir": str(tmp_path)}
    code = asyncio.run(run_in_module(record, ["sh", "-c", f'echo "$GREETING $(pwd)" > {out}; exit 7']))
    assert code == 7
    assert out.read_text().strip() == f"hi {tmp_path}"


def test_run_in_module_missing_command(tmp_path):
    assert asyncio.run(run_in_module({"environment": {}, "working_dir": None}, ["/nonexistent/cmd"])) == 127


def test_run_in_module_expands_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / "app").mkdir()
    out = tmp_path / "out"
    record = {"environment": {}, "working_dir": "~/app"}
    assert asyncio.run(run_in_module(record, ["sh", "-c", f"pwd > {out}"])) == 0
    assert out.read_text().strip() == str(tmp_path / "app")
