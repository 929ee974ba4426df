"""
imageshrink tool invocation primitives.

Defines the result type returned by every external tool invocation.
"""

from __future__ import annotations


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def tool(self) -> str:
        """Name of the invoked binary."""
        if isinstance(self.command, str):
            return self.command.split()[0] if self.command else ""
        return self.command[0] if self.command else ""

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"
