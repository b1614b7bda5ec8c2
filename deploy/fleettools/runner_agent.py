""" Wrapper around the runner agent's own configuration executable (config.cmd / config.sh). """

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from fabric.api import local, lcd, settings, hide # type: ignore

from fleettools.errors import AgentError

from typing import List, Optional, Sequence, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.credentials import ServiceIdentity
    from fleettools.runner_unit import RunnerUnit

rootLogger = logging.getLogger()

# work folder for jobs, relative to the unit's directory
RUNNER_WORK_DIR = "_work"

# flags whose value must never show up in a log line
SECRET_FLAGS = {"--token", "--windowslogonpassword"}

def sanitize_args(args: Sequence[str]) -> List[str]:
    """ Mask the values that follow secret flags. """
    sanitized = []
    mask_next = False
    for arg in args:
        sanitized.append("***" if mask_next else arg)
        mask_next = arg in SECRET_FLAGS
    return sanitized

class RunnerAgent:
    """Invokes the agent's configuration step inside a unit's directory.

    Attributes:
        platform: 'windows' (config.cmd, agent registers its own service) or
            'linux' (config.sh, service installed separately with svc.sh).
    """
    platform: str

    def __init__(self, platform: str) -> None:
        self.platform = platform

    @property
    def is_windows(self) -> bool:
        return self.platform == 'windows'

    def config_script(self, unit: RunnerUnit) -> Path:
        return unit.workdir / ("config.cmd" if self.is_windows else "config.sh")

    def configure_args(self, org_url: str, token: str, runner_name: str, runner_group: str,
                       label: str, identity: Optional[ServiceIdentity] = None) -> List[str]:
        """ Flags for an unattended registration of one runner. """
        args = [
            "--unattended",
            "--url", org_url,
            "--token", token,
            "--name", runner_name,
            "--runnergroup", runner_group,
            "--work", RUNNER_WORK_DIR,
            "--labels", label,
            "--no-default-labels",
            "--replace",
        ]
        if self.is_windows:
            args.append("--runasservice")
            if identity is not None:
                args += ["--windowslogonaccount", identity.username,
                         "--windowslogonpassword", identity.password]
        return args

    def configure(self, unit: RunnerUnit, org_url: str, token: str, runner_group: str,
                  label: str, identity: Optional[ServiceIdentity] = None) -> None:
        """Register `unit` with the org and, on Windows, as a service.

        Raises:
            AgentError: the configuration executable is missing or exited non-zero.
        """
        args = self.configure_args(org_url, token, unit.name, runner_group, label, identity)
        self._run(unit, args)

    def remove(self, unit: RunnerUnit, removal_token: str) -> None:
        """Deregister `unit` from the org using the agent itself.

        Raises:
            AgentError: the configuration executable is missing or exited non-zero.
        """
        self._run(unit, ["remove", "--token", removal_token])

    def _shell_join(self, argv: Sequence[str]) -> str:
        if self.is_windows:
            return subprocess.list2cmdline(list(argv))
        return " ".join(shlex.quote(a) for a in argv)

    def _run(self, unit: RunnerUnit, args: List[str]) -> None:
        script = self.config_script(unit)
        if not script.is_file():
            raise AgentError(f"[{unit.name}] {script} not found, was the archive extracted?")

        rootLogger.debug(f"[{unit.name}] Running: {self._shell_join([str(script)] + sanitize_args(args))}")
        with lcd(str(unit.workdir)), settings(warn_only=True), hide('everything'):
            res = local(self._shell_join([str(script)] + args), capture=True)

        rootLogger.debug(f"[{unit.name}] stdout: {res.stdout}")
        if res.return_code != 0:
            rootLogger.debug(f"[{unit.name}] stderr: {res.stderr}")
            raise AgentError(f"[{unit.name}] {script.name} {args[0]} exited with {res.return_code}: {res.stderr.strip()}")
