"""Tests for the Claude CLI agent channel.

The subprocess is mocked; no real CLI is started.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autofinish.agent_channel import ClaudeCliChannel, find_claude_cli
from autofinish.config import AutoFinishConfig
from autofinish.errors import AgentDispatchError


def make_process(output, returncode=0, stderr=b""):
    stdout = output if isinstance(output, bytes) else json.dumps(output).encode()
    mock_process = AsyncMock()
    mock_process.communicate.return_value = (stdout, stderr)
    mock_process.returncode = returncode
    return mock_process


CLAUDE_OUTPUT = {
    "is_error": False,
    "result": "Implemented the form. Task complete.",
    "session_id": "abc-123",
    "num_turns": 4,
    "duration_ms": 5000,
    "total_cost_usd": 0.02,
}


class TestBuildCommand:
    """Test argv construction."""

    def test_local_command(self):
        channel = ClaudeCliChannel(AutoFinishConfig(max_turns=10, allowed_tools=["Read", "Edit"]))

        cmd = channel.build_command("build api")

        assert cmd[0] == "claude"
        assert cmd[cmd.index("-p") + 1] == "build api"
        assert cmd[cmd.index("--output-format") + 1] == "json"
        assert cmd[cmd.index("--max-turns") + 1] == "10"
        assert cmd[cmd.index("--allowedTools") + 1] == "Read,Edit"
        assert "--resume" not in cmd

    def test_sandbox_command(self):
        channel = ClaudeCliChannel(
            AutoFinishConfig(sandbox_container="sandbox", workspace_path="/work")
        )

        cmd = channel.build_command("build api")

        assert cmd[:6] == ["docker", "exec", "-w", "/work", "sandbox", "claude"]

    def test_resumes_known_session(self):
        channel = ClaudeCliChannel()
        channel.session_id = "abc-123"

        cmd = channel.build_command("status?")

        assert cmd[cmd.index("--resume") + 1] == "abc-123"


class TestSend:
    """Test send() and invoke()."""

    @pytest.mark.asyncio
    async def test_returns_result_and_tracks_session(self):
        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=make_process(CLAUDE_OUTPUT)),
        ) as mock_exec:
            channel = ClaudeCliChannel(cwd="/tmp/project")
            reply = await channel.send("build the form")

        assert reply == "Implemented the form. Task complete."
        assert channel.session_id == "abc-123"
        assert channel.total_cost_usd == pytest.approx(0.02)
        assert mock_exec.call_args[1]["cwd"] == "/tmp/project"

    @pytest.mark.asyncio
    async def test_error_reply_raises(self):
        output = {**CLAUDE_OUTPUT, "is_error": True, "result": "max turns reached"}
        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=make_process(output)),
        ):
            with pytest.raises(AgentDispatchError, match="max turns reached"):
                await ClaudeCliChannel().send("build the form")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=make_process(b"not json")),
        ):
            with pytest.raises(AgentDispatchError, match="parse"):
                await ClaudeCliChannel().send("build the form")

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_output_raises(self):
        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=make_process(b"", returncode=1, stderr=b"auth failed")),
        ):
            with pytest.raises(AgentDispatchError, match="auth failed"):
                await ClaudeCliChannel().send("build the form")

    @pytest.mark.asyncio
    async def test_missing_executable_raises(self):
        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("claude")),
        ):
            with pytest.raises(AgentDispatchError, match="Failed to start"):
                await ClaudeCliChannel().send("build the form")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        async def hang():
            await asyncio.sleep(10)

        mock_process = AsyncMock()
        mock_process.communicate = hang
        mock_process.kill = MagicMock()

        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=mock_process),
        ):
            channel = ClaudeCliChannel(AutoFinishConfig(task_timeout_seconds=0.01))
            with pytest.raises(AgentDispatchError, match="timed out"):
                await channel.send("build the form")

        mock_process.kill.assert_called_once()
        mock_process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancelled_call_kills_and_reaps_process(self):
        """An outer timeout (as used for status requests) should not leave a zombie."""

        async def hang():
            await asyncio.sleep(10)

        mock_process = AsyncMock()
        mock_process.communicate = hang
        mock_process.kill = MagicMock()

        with patch(
            "autofinish.agent_channel.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=mock_process),
        ):
            channel = ClaudeCliChannel(AutoFinishConfig(task_timeout_seconds=10))
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(channel.send("status?"), timeout=0.01)

        mock_process.kill.assert_called_once()
        mock_process.wait.assert_awaited_once()


class TestEnsureReady:
    """Test the preflight check."""

    @pytest.mark.asyncio
    async def test_missing_cli_raises(self):
        with patch("autofinish.agent_channel.find_claude_cli", return_value=None):
            with pytest.raises(AgentDispatchError, match="not found"):
                await ClaudeCliChannel().ensure_ready()

    @pytest.mark.asyncio
    async def test_found_cli_passes(self):
        with patch("autofinish.agent_channel.find_claude_cli", return_value="/usr/bin/claude"):
            await ClaudeCliChannel().ensure_ready()

    @pytest.mark.asyncio
    async def test_sandbox_requires_docker(self):
        channel = ClaudeCliChannel(AutoFinishConfig(sandbox_container="sandbox"))
        with patch("autofinish.agent_channel.shutil.which", return_value=None):
            with pytest.raises(AgentDispatchError, match="docker"):
                await channel.ensure_ready()


class TestFindClaudeCli:
    """Test CLI discovery."""

    def test_uses_path_first(self):
        with patch("autofinish.agent_channel.shutil.which", return_value="/usr/bin/claude"):
            assert find_claude_cli() == "/usr/bin/claude"

    def test_checks_home_install(self, tmp_path):
        local = tmp_path / ".claude" / "local"
        local.mkdir(parents=True)
        executable = local / "claude"
        executable.write_text("#!/bin/sh\n")
        executable.chmod(0o755)

        with patch("autofinish.agent_channel.shutil.which", return_value=None):
            with patch("autofinish.agent_channel.Path.home", return_value=tmp_path):
                assert find_claude_cli() == str(executable)

    def test_returns_none_when_missing(self, tmp_path):
        with patch("autofinish.agent_channel.shutil.which", return_value=None):
            with patch("autofinish.agent_channel.Path.home", return_value=tmp_path):
                assert find_claude_cli() is None
