from __future__ import annotations
from dataclasses import dataclass, replace
import io
import pytest
from pytest_mock import MockerFixture
import tarfile
import zipfile
from fnmatch import fnmatchcase
from pathlib import Path

from fleettools.fleet_config import FleetConfig
from fleettools.errors import ServiceError
from fleettools.service_managers import ServiceHandle, ServiceManager

from typing import Dict, List, Optional

# fixtures defined in this file will be available to all tests. see
# https://docs.pytest.org/en/4.6.x/example/simple.html#package-directory-level-fixtures-setups

class FabricResult(str):
    """Stand-in for the _AttributeString that fabric's local(capture=True) returns"""
    return_code: int
    stdout: str
    stderr: str
    failed: bool
    succeeded: bool

    def __new__(cls, stdout: str = "", return_code: int = 0, stderr: str = "") -> FabricResult:
        res = super().__new__(cls, stdout)
        res.stdout = stdout
        res.return_code = return_code
        res.stderr = stderr
        res.failed = return_code != 0
        res.succeeded = not res.failed
        return res

def write_runner_archive(path: Path, files: Optional[Dict[str, str]] = None) -> Path:
    """Write a small zip or tar.gz (picked from the suffix) that looks like an actions/runner release"""
    if files is None:
        files = {
            'config.sh': '#!/bin/bash\nexit 0\n',
            'config.cmd': '@echo off\r\nexit /b 0\r\n',
            'svc.sh': '#!/bin/bash\nexit 0\n',
            'bin/Runner.Listener': 'listener',
        }
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == '.zip':
        with zipfile.ZipFile(path, 'w') as zf:
            for name, content in files.items():
                zf.writestr(name, content)
    else:
        with tarfile.open(path, 'w:gz') as tf:
            for name, content in files.items():
                data = content.encode()
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o755
                tf.addfile(info, io.BytesIO(data))
    return path

@pytest.fixture()
def fleet_config(tmp_path) -> FleetConfig:
    """A two unit linux fleet rooted in a temp dir with no service lookup delay"""
    return FleetConfig(
        organization='octo-org',
        access_token='ghp_testing',
        agent_version='2.319.1',
        num_runners=2,
        base_dir=tmp_path / 'runners',
        runner_group='Default',
        platform='linux',
        service_lookup_delay_secs=0)

@pytest.fixture()
def windows_fleet_config(fleet_config) -> FleetConfig:
    return replace(fleet_config, platform='windows')

@pytest.fixture()
def cached_artifact(fleet_config) -> Path:
    """A valid archive already sitting in the fleet's base dir"""
    return write_runner_archive(fleet_config.artifact_path)

class FakeServiceManager(ServiceManager):
    """In-memory service manager. `services` maps service name to status.

    Every call is appended to `calls` so tests can check ordering.
    """
    services: Dict[str, str]
    calls: List[tuple]
    fail_on: set

    def __init__(self, services: Optional[Dict[str, str]] = None, fail_on: Optional[set] = None) -> None:
        self.services = dict(services or {})
        self.calls = []
        self.fail_on = set(fail_on or ())

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise ServiceError(f"{op} failed")

    def query_services(self, pattern: str) -> List[ServiceHandle]:
        self.calls.append(('query', pattern))
        self._maybe_fail('query')
        return [ServiceHandle(n, s) for n, s in sorted(self.services.items()) if fnmatchcase(n, pattern)]

    def start(self, service: ServiceHandle) -> None:
        self.calls.append(('start', service.name))
        self._maybe_fail('start')
        self.services[service.name] = 'running'

    def stop(self, service: ServiceHandle) -> None:
        self.calls.append(('stop', service.name))
        self._maybe_fail('stop')
        self.services[service.name] = 'stopped'

    def delete(self, service: ServiceHandle, unit) -> None:
        self.calls.append(('delete', service.name))
        self._maybe_fail('delete')
        del self.services[service.name]

    def install(self, unit, identity=None) -> None:
        self.calls.append(('install', unit.name))
        self._maybe_fail('install')

    def ops(self, op: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == op]

@pytest.fixture()
def fake_service_manager() -> FakeServiceManager:
    return FakeServiceManager()

@pytest.fixture()
def fabric_local(mocker: MockerFixture):
    """Factory patching fabric's local() in a module, returning the mock

    Usage: local = fabric_local('fleettools.service_managers', FabricResult('out'))
    """
    def patch(module: str, *results: FabricResult):
        mock = mocker.patch(f"{module}.local")
        if len(results) == 1:
            mock.return_value = results[0]
        elif results:
            mock.side_effect = list(results)
        else:
            mock.return_value = FabricResult()
        return mock
    return patch

@pytest.fixture()
def task_mocker(mocker: MockerFixture):
    """Encapsulate logic for mocking a runnerfleet task"""

    import runnerfleet

    @dataclass
    class TaskMocker:
        mocker: MockerFixture

        def patch(self, task_name: str, wrap_task=False, wrap_config=False) -> runnerfleet.Task:
            """Specialization of `mocker.patch()` that understands runnerfleet.TASKS registry

            Args:
                task_name:
                wrap_task. Default is False: if True, create Mock using `wraps`, otherwise use `spec_set`
                wrap_config. Default is False: if True, create Mock using `wraps`, otherwise use `spec_set`

            Returns:
                The `runnerfleet.Task` modified by the underlying `mocker.patch()` call(s)
            """

            t = runnerfleet.TASKS[task_name]
            mocker.patch.dict(t)
            if wrap_task:
                t['task'] = mocker.MagicMock(wraps=t['task'])
            else:
                t['task'] = mocker.MagicMock(spec_set=t['task'])

            if t['config']:
                if wrap_config:
                    t['config'] = mocker.MagicMock(wraps=t['config'])
                else:
                    t['config'] = mocker.MagicMock(spec_set=t['config'])

            return t

    return TaskMocker(mocker)
