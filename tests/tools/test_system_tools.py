import asyncio

import pytest

from agentcore.tools import ToolCatalog
from agentcore.tools import system_tools
from agentcore.tools.system_tools import MAX_READ_BYTES, register_system_tools


@pytest.fixture
def catalog(tmp_path):
    (tmp_path / "notes.txt").write_text("hello workspace", encoding="utf-8")
    return register_system_tools(ToolCatalog(), tmp_path)


def test_registers_both_tools(catalog):
    assert catalog.list_ids() == ["system.time", "workspace.read_file"]


@pytest.mark.asyncio
async def test_time(catalog):
    result = await catalog.run("system.time", {})

    assert result.ok
    assert set(result.output) == {"utc", "local", "timezone"}


@pytest.mark.asyncio
async def test_read_file_splits_model_and_user_output(catalog):
    result = await catalog.run("workspace.read_file", {"path": "notes.txt"})

    assert result.ok
    assert result.for_llm == "hello workspace"
    assert result.for_user == "Read notes.txt (15 bytes)"


@pytest.mark.asyncio
async def test_read_file_refuses_escape(catalog):
    result = await catalog.run("workspace.read_file", {"path": "../../etc/passwd"})

    assert result.error.code == "PATH_OUTSIDE_WORKSPACE"


@pytest.mark.asyncio
async def test_read_file_errors(catalog, tmp_path):
    (tmp_path / "big.bin").write_bytes(b"x" * (MAX_READ_BYTES + 1))

    missing = await catalog.run("workspace.read_file", {"path": "absent.txt"})
    no_path = await catalog.run("workspace.read_file", {})
    too_big = await catalog.run("workspace.read_file", {"path": "big.bin"})

    assert missing.error.code == "FILE_NOT_FOUND"
    assert no_path.error.code == "INVALID_ARGUMENTS"
    assert too_big.error.code == "FILE_TOO_LARGE"


@pytest.mark.asyncio
async def test_read_file_runs_off_the_event_loop(catalog, monkeypatch):
    calls = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        calls.append(func.__name__)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(system_tools.asyncio, "to_thread", recording_to_thread)

    result = await catalog.run("workspace.read_file", {"path": "notes.txt"})

    assert result.for_llm == "hello workspace"
    assert calls == ["read_text"]
