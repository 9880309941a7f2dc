"""
External Command Runner

Every interaction with the validator, the token program and the container
runtime goes through their official command-line tools. This module is the
single place where those tools are executed.

The failure policy is the one of a ``set -e`` shell script: a non-zero exit
raises CommandFailedError and nothing after it runs.
"""

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .config import ToolPaths
from .errors import CommandFailedError, CommandTimeoutError, ToolNotFoundError


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished command."""
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def lines(self) -> List[str]:
        return self.stdout.splitlines()


class CommandRunner:
    """
    Run tools by logical name ("solana", "spl-token", ...).

    Output goes straight to the terminal so the operator sees exactly what
    the wrapped CLI prints; pass ``capture=True`` when the caller needs to
    parse stdout.
    """

    def __init__(self, tools: Optional[ToolPaths] = None, timeout: Optional[float] = None,
                 dry_run: bool = False, env: Optional[Mapping[str, str]] = None):
        self.tools = tools or ToolPaths()
        self.timeout = timeout
        self.dry_run = dry_run
        self.env = dict(env) if env else None
        self._resolved: Dict[str, str] = {}

    def resolve(self, tool: str) -> str:
        """Find the executable for a tool, failing early if it is missing."""
        if tool not in self._resolved:
            executable = self.tools.executable(tool)
            found = shutil.which(executable)
            if found is None:
                raise ToolNotFoundError(tool, executable)
            self._resolved[tool] = found
        return self._resolved[tool]

    def run(self, tool: str, *args: str, capture: bool = False,
            env: Optional[Mapping[str, str]] = None) -> CommandResult:
        """
        Execute ``tool`` with ``args``.

        Raises:
            ToolNotFoundError: executable not on PATH
            CommandFailedError: non-zero exit status
            CommandTimeoutError: timeout configured and exceeded
        """
        argv = [self.tools.executable(tool), *[str(a) for a in args]]
        logger.debug("Running: %s", shlex.join(argv))

        if self.dry_run:
            print(f"$ {shlex.join(argv)}")
            return CommandResult(argv=argv, returncode=0)

        argv[0] = self.resolve(tool)
        run_env = None
        if self.env or env:
            run_env = {**os.environ, **(self.env or {}), **(env or {})}

        try:
            completed = subprocess.run(
                argv,
                capture_output=capture,
                text=True,
                timeout=self.timeout,
                env=run_env,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise CommandTimeoutError(argv, self.timeout) from None

        result = CommandResult(
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if result.returncode != 0:
            logger.debug("Command exited with %d: %s", result.returncode, shlex.join(argv))
            raise CommandFailedError(argv, result.returncode, result.stderr or None)
        return result

    def output(self, tool: str, *args: str, env: Optional[Mapping[str, str]] = None) -> str:
        """Run a tool and return its stripped stdout."""
        return self.run(tool, *args, capture=True, env=env).stdout.strip()
