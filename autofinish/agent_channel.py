"""Agent channel that drives the Claude Code CLI.

Runs ``claude -p <prompt> --output-format json`` as a subprocess, either
locally or inside a docker container, and resumes the same conversation for
follow-up prompts so status requests reach the agent that did the work.
"""

import asyncio
import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from autofinish.config import AutoFinishConfig
from autofinish.errors import AgentDispatchError

logger = logging.getLogger(__name__)


def find_claude_cli(command: str = "claude") -> str | None:
    """Find the Claude CLI executable.

    Checks:
    1. shutil.which(command) - standard PATH lookup
    2. ~/.claude/local/claude and ~/.claude/bin/claude

    Returns:
        Path to the Claude CLI, or None if not found.
    """
    path_result = shutil.which(command)
    if path_result:
        return path_result

    home = Path.home()
    for location in (home / ".claude" / "local" / "claude", home / ".claude" / "bin" / "claude"):
        if location.exists() and os.access(location, os.X_OK):
            return str(location)

    return None


@dataclass
class AgentReply:
    """Parsed JSON output of one CLI invocation."""

    is_error: bool
    result: str
    session_id: str
    num_turns: int = 0
    duration_ms: int = 0
    total_cost_usd: float = 0.0


class ClaudeCliChannel:
    """AgentChannel backed by the ``claude`` CLI.

    Usage:
        channel = ClaudeCliChannel(AutoFinishConfig.from_env())
        await channel.ensure_ready()
        reply = await channel.send("Implement the login form")
    """

    def __init__(self, config: AutoFinishConfig | None = None, cwd: str | None = None):
        self.config = config or AutoFinishConfig()
        self.cwd = cwd
        self.session_id: str | None = None
        self.total_cost_usd = 0.0

    def build_command(self, prompt: str) -> list[str]:
        """Build the argv for one invocation."""
        cmd: list[str] = []
        if self.config.sandbox_container:
            cmd.extend(
                [
                    "docker",
                    "exec",
                    "-w",
                    self.config.workspace_path,
                    self.config.sandbox_container,
                ]
            )
        cmd.append(self.config.claude_command)

        # Continue the same conversation across prompts
        if self.session_id:
            cmd.extend(["--resume", self.session_id])

        cmd.extend(
            [
                "-p",
                prompt,
                "--output-format",
                "json",
                "--permission-mode",
                "acceptEdits",
                "--max-turns",
                str(self.config.max_turns),
                "--allowedTools",
                ",".join(self.config.allowed_tools),
            ]
        )
        return cmd

    async def ensure_ready(self) -> None:
        """Check that the CLI (or docker, for a sandbox) can be started.

        Raises:
            AgentDispatchError: If the executable cannot be found
        """
        if self.config.sandbox_container:
            if shutil.which("docker") is None:
                raise AgentDispatchError("docker not found; cannot reach the sandbox container")
            return
        if find_claude_cli(self.config.claude_command) is None:
            raise AgentDispatchError(
                f"Claude CLI '{self.config.claude_command}' not found on PATH"
            )

    async def send(self, prompt: str) -> str:
        """Send a prompt and return the agent's reply text.

        Raises:
            AgentDispatchError: If the process fails, times out, or returns
                unparseable or error output
        """
        reply = await self.invoke(prompt)
        if reply.is_error:
            raise AgentDispatchError(f"Agent reported an error: {reply.result[:200]}")
        return reply.result

    async def invoke(self, prompt: str) -> AgentReply:
        cmd = self.build_command(prompt)
        timeout = self.config.task_timeout_seconds
        logger.debug(f"Invoking agent (resume={self.session_id is not None})")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise AgentDispatchError(f"Failed to start agent process: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Agent invocation timed out after {timeout}s")
            process.kill()
            await process.wait()
            raise AgentDispatchError(f"Agent timed out after {timeout} seconds") from e
        except asyncio.CancelledError:
            process.kill()
            await asyncio.shield(process.wait())
            raise

        stdout_str = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0 and not stdout_str.strip():
            stderr_str = stderr.decode("utf-8", errors="replace")
            raise AgentDispatchError(
                f"Agent process exited with {process.returncode}: {stderr_str.strip()[:500]}"
            )

        try:
            output = json.loads(stdout_str)
        except json.JSONDecodeError as e:
            raise AgentDispatchError(f"Failed to parse Claude JSON output: {e}") from e

        reply = AgentReply(
            is_error=output.get("is_error", False),
            result=output.get("result", ""),
            session_id=output.get("session_id", ""),
            num_turns=output.get("num_turns", 0),
            duration_ms=output.get("duration_ms", 0),
            total_cost_usd=output.get("total_cost_usd", 0.0),
        )
        if reply.session_id:
            self.session_id = reply.session_id
        self.total_cost_usd += reply.total_cost_usd
        return reply
