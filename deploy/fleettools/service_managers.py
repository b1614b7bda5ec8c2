""" OS service manager abstraction for runner services. """

from __future__ import annotations

import abc
import json
import logging
import os
from dataclasses import dataclass
from fabric.api import local, lcd, settings, hide # type: ignore

from fleettools.errors import ServiceError

from typing import List, Optional, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.credentials import ServiceIdentity
    from fleettools.runner_unit import RunnerUnit

rootLogger = logging.getLogger()

# the agent names its service actions.runner.<org>.<runner name>[.service]
SERVICE_NAME_PREFIX = "actions.runner.*."

@dataclass(frozen=True)
class ServiceHandle:
    """ An OS service found by pattern. `status` is lower case, e.g. 'running' or 'stopped'. """
    name: str
    status: str

    @property
    def running(self) -> bool:
        return self.status == 'running'

class ServiceManager(metaclass=abc.ABCMeta):
    """Class used to represent the different OS service managers a runner unit can be bound to.

    Services are addressed through a wildcard pattern derived from the unit name,
    never by an exact name, since the agent picks the service name itself.
    """
    service_name_suffix: str = ""

    def service_pattern(self, unit: RunnerUnit) -> str:
        return f"{SERVICE_NAME_PREFIX}{unit.name}{self.service_name_suffix}"

    def find_service(self, unit: RunnerUnit) -> Optional[ServiceHandle]:
        """Look up the service of `unit`.

        Returns:
            The matching service, or None if nothing matches.

        Raises:
            ServiceError: the query failed or more than one service matched.
        """
        pattern = self.service_pattern(unit)
        handles = self.query_services(pattern)
        rootLogger.debug(f"[{unit.name}] Services matching {pattern}: {handles}")
        if len(handles) > 1:
            raise ServiceError(f"[{unit.name}] {len(handles)} services match {pattern}: {', '.join(h.name for h in handles)}")
        return handles[0] if handles else None

    @abc.abstractmethod
    def query_services(self, pattern: str) -> List[ServiceHandle]:
        """ Return every service whose name matches the wildcard `pattern`. """
        raise NotImplementedError

    @abc.abstractmethod
    def start(self, service: ServiceHandle) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def stop(self, service: ServiceHandle) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, service: ServiceHandle, unit: RunnerUnit) -> None:
        """ Remove the service registration of `unit` from the OS. """
        raise NotImplementedError

    def install(self, unit: RunnerUnit, identity: Optional[ServiceIdentity] = None) -> None:
        """Register the unit's service after the agent has been configured.

        Platforms where the agent's configuration step registers the service
        itself keep this no-op.
        """

    def status_of(self, unit: RunnerUnit) -> str:
        """ Human readable status, used for reporting only. """
        service = self.find_service(unit)
        return service.status if service is not None else "not installed"

    def run_command(self, command: str, cwd: Optional[str] = None) -> str:
        """Run `command` locally, returning its stdout.

        Raises:
            ServiceError: the command exited non-zero.
        """
        rootLogger.debug(f"Running: {command}")
        with settings(warn_only=True), hide('everything'):
            if cwd is not None:
                with lcd(cwd):
                    res = local(command, capture=True)
            else:
                res = local(command, capture=True)

        if res.return_code != 0:
            raise ServiceError(f"'{command}' exited with {res.return_code}: {res.stderr.strip()}")
        return res.stdout


def powershell(script: str) -> str:
    return f'powershell.exe -NoProfile -NonInteractive -Command "{script}"'

class WindowsServiceManager(ServiceManager):
    """ Windows Service Control Manager, through PowerShell and sc.exe. """

    def query_services(self, pattern: str) -> List[ServiceHandle]:
        out = self.run_command(powershell(
            f"Get-Service -Name '{pattern}' | "
            "ForEach-Object { [pscustomobject]@{Name=$_.Name; Status=$_.Status.ToString()} } | "
            "ConvertTo-Json -Compress"))
        out = out.strip()
        if not out:
            return []

        try:
            parsed = json.loads(out)
        except ValueError as e:
            raise ServiceError(f"Unable to parse Get-Service output for {pattern}: {out!r}") from e

        # ConvertTo-Json emits a bare object for a single match
        if isinstance(parsed, dict):
            parsed = [parsed]
        try:
            return [ServiceHandle(s['Name'], str(s['Status']).lower()) for s in parsed]
        except (KeyError, TypeError) as e:
            raise ServiceError(f"Unexpected Get-Service output for {pattern}: {out!r}") from e

    def start(self, service: ServiceHandle) -> None:
        self.run_command(powershell(f"Start-Service -Name '{service.name}'"))

    def stop(self, service: ServiceHandle) -> None:
        self.run_command(powershell(f"Stop-Service -Name '{service.name}' -Force"))

    def delete(self, service: ServiceHandle, unit: RunnerUnit) -> None:
        self.run_command(f'sc.exe delete "{service.name}"')


# systemd SUB states mapped onto the statuses used by ServiceHandle
SYSTEMD_STATES = {
    'running': 'running',
    'dead': 'stopped',
    'exited': 'stopped',
    'failed': 'failed',
}

class SystemdServiceManager(ServiceManager):
    """systemd, with registration done by the agent's svc.sh helper.

    Attributes:
        use_sudo: Prefix privileged commands with sudo.
    """
    service_name_suffix = ".service"
    use_sudo: bool

    def __init__(self, use_sudo: Optional[bool] = None) -> None:
        if use_sudo is None:
            use_sudo = os.geteuid() != 0
        self.use_sudo = use_sudo

    def privileged(self, command: str) -> str:
        return f"sudo {command}" if self.use_sudo else command

    def query_services(self, pattern: str) -> List[ServiceHandle]:
        out = self.run_command(f"systemctl list-units --all --type=service --no-legend --plain '{pattern}'")
        handles = []
        for line in out.splitlines():
            fields = line.split()
            # UNIT LOAD ACTIVE SUB DESCRIPTION...
            if len(fields) < 4:
                continue
            handles.append(ServiceHandle(fields[0], SYSTEMD_STATES.get(fields[3], fields[3])))
        return handles

    def start(self, service: ServiceHandle) -> None:
        self.run_command(self.privileged(f"systemctl start '{service.name}'"))

    def stop(self, service: ServiceHandle) -> None:
        self.run_command(self.privileged(f"systemctl stop '{service.name}'"))

    def install(self, unit: RunnerUnit, identity: Optional[ServiceIdentity] = None) -> None:
        user = f" '{identity.username}'" if identity is not None else ""
        self.run_command(self.privileged(f"./svc.sh install{user}"), cwd=str(unit.workdir))

    def delete(self, service: ServiceHandle, unit: RunnerUnit) -> None:
        if not (unit.workdir / "svc.sh").is_file():
            raise ServiceError(f"[{unit.name}] svc.sh missing from {unit.workdir}, unable to uninstall {service.name}")
        self.run_command(self.privileged("./svc.sh uninstall"), cwd=str(unit.workdir))


def service_manager_for_platform(platform: str) -> ServiceManager:
    if platform == 'windows':
        return WindowsServiceManager()
    elif platform == 'linux':
        return SystemdServiceManager()
    else:
        raise ValueError(f"Invalid platform: '{platform}'")
