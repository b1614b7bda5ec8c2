""" Provisioning of a single runner unit: directory, extraction, agent configuration, service start. """

from __future__ import annotations

import logging
import shutil
import tarfile
import time
import zipfile
from pathlib import Path

from fleettools.errors import UnitError
from fleettools.fleet_summary import UnitOutcome, UnitStatus

from typing import Callable, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.credentials import CredentialProvider
    from fleettools.fleet_config import FleetConfig
    from fleettools.runner_agent import RunnerAgent
    from fleettools.runner_unit import RunnerUnit
    from fleettools.service_managers import ServiceManager

rootLogger = logging.getLogger()

def unit_logger(unit: RunnerUnit, logstr: str, debug: bool = False) -> None:
    """ Log with the unit's name as prefix. """
    if debug:
        rootLogger.debug(f"[{unit.name}] {logstr}")
    else:
        rootLogger.info(f"[{unit.name}] {logstr}")

def extract_artifact(artifact_path: Path, unit: RunnerUnit) -> None:
    """Copy the shared archive into the unit's directory and unpack it there.

    The shared archive is only read, each unit works on its own copy.

    Raises:
        UnitError: the copy or the extraction failed. Whatever was extracted so far stays in place.
    """
    local_copy = unit.workdir / artifact_path.name
    try:
        shutil.copy2(artifact_path, local_copy)
        shutil.unpack_archive(str(local_copy), str(unit.workdir))
    except (OSError, shutil.ReadError, tarfile.TarError, zipfile.BadZipFile) as e:
        raise UnitError(f"[{unit.name}] Failed to extract {artifact_path.name} into {unit.workdir}: {e}") from e
    unit_logger(unit, f"Extracted {artifact_path.name}", debug=True)

def provision_unit(unit: RunnerUnit,
                   registration_token: str,
                   config: FleetConfig,
                   agent: RunnerAgent,
                   service_manager: ServiceManager,
                   credentials: CredentialProvider,
                   sleep: Callable[[float], None] = time.sleep) -> UnitOutcome:
    """Bring up one runner unit.

    Partial state is left as-is on failure, nothing is rolled back.

    Returns:
        RUNNING if the service was found and started, NOT_STARTED if the agent
        was configured but its service could not be found after the lookup delay.

    Raises:
        UnitError: any step scoped to this unit failed.
    """
    unit_logger(unit, f"Provisioning in {unit.workdir}")

    try:
        unit.workdir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise UnitError(f"[{unit.name}] Unable to create {unit.workdir}: {e}") from e

    extract_artifact(config.artifact_path, unit)

    identity = credentials.resolve_service_identity()
    if identity is not None:
        unit_logger(unit, f"Service will log on as {identity.username}", debug=True)

    unit_logger(unit, f"Registering with {config.org_url} (group '{config.runner_group}', label '{config.runner_label}')")
    agent.configure(unit, config.org_url, registration_token, config.runner_group, config.runner_label, identity)
    service_manager.install(unit, identity)

    # the service shows up asynchronously after the agent registers it
    sleep(config.service_lookup_delay_secs)
    service = service_manager.find_service(unit)
    if service is None:
        rootLogger.warning(f"[{unit.name}] No service matching {service_manager.service_pattern(unit)} found, runner is configured but not started.")
        return UnitOutcome(unit, UnitStatus.NOT_STARTED, "service not found")

    if not service.running:
        unit_logger(unit, f"Starting service {service.name}")
        service_manager.start(service)

    status = service_manager.status_of(unit)
    unit_logger(unit, f"Service {service.name} is {status}")
    return UnitOutcome(unit, UnitStatus.RUNNING, f"{service.name}: {status}")
