"""
Error hierarchy for the localnet harness.

Every failure the harness can report derives from LocalnetError, so the
CLI has exactly one place where errors are turned into exit codes.
"""

from typing import List, Optional, Sequence


class LocalnetError(Exception):
    """Base class for all harness errors."""

    exit_code = 1


class ConfigError(LocalnetError):
    """Configuration file or environment could not be interpreted."""


class KeypairError(LocalnetError):
    """A keypair file is missing, malformed or inconsistent."""


class TokenError(LocalnetError):
    """Unexpected output from the SPL token CLI."""


class ComposeError(LocalnetError):
    """Invalid container topology settings."""

    def __init__(self, problems: Sequence[str]):
        self.problems: List[str] = list(problems)
        super().__init__("Invalid compose network settings:\n  - " + "\n  - ".join(self.problems))


class RpcUnavailableError(LocalnetError):
    """The validator RPC endpoint did not become healthy in time."""


class CommandError(LocalnetError):
    """Base class for failures of external command-line tools."""


class ToolNotFoundError(CommandError):
    """Required executable is not available on PATH."""

    def __init__(self, tool: str, executable: str):
        self.tool = tool
        self.executable = executable
        super().__init__(f"Required tool '{executable}' ({tool}) was not found on PATH")


class CommandFailedError(CommandError):
    """External command exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: Optional[str] = None):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed with exit code {returncode}: {' '.join(self.argv)}"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)

    @property
    def exit_code(self) -> int:
        return self.returncode if self.returncode > 0 else 1


class CommandTimeoutError(CommandError):
    """External command did not finish within the configured timeout."""

    def __init__(self, argv: Sequence[str], timeout: float):
        self.argv = list(argv)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {' '.join(self.argv)}")
