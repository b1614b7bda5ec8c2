""" Teardown of a single runner unit, best effort. """

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path

from fleettools.errors import AgentError, ServiceError, TokenError
from fleettools.fleet_summary import UnitOutcome, UnitStatus

from typing import List, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.fleet_config import FleetConfig
    from fleettools.runner_agent import RunnerAgent
    from fleettools.runner_unit import RunnerUnit
    from fleettools.service_managers import ServiceManager
    from ghtools.ghtools import GitHubTokenBroker

rootLogger = logging.getLogger()

def remove_tree(path: Path) -> None:
    """ shutil.rmtree() that also removes read-only files (the agent ships some on Windows). """
    for root, _, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            if not os.path.islink(file_path):
                os.chmod(file_path, stat.S_IREAD | stat.S_IWRITE)
    shutil.rmtree(path)

def remove_service(unit: RunnerUnit, service_manager: ServiceManager) -> None:
    """Stop and delete the unit's OS service, if there is one.

    Raises:
        ServiceError: lookup, stop or delete failed. A service that does not exist is not an error.
    """
    service = service_manager.find_service(unit)
    if service is None:
        rootLogger.info(f"[{unit.name}] No service matching {service_manager.service_pattern(unit)}, nothing to stop.")
        return

    if service.running:
        rootLogger.info(f"[{unit.name}] Stopping service {service.name}")
        service_manager.stop(service)

    rootLogger.info(f"[{unit.name}] Deleting service {service.name}")
    service_manager.delete(service, unit)

def deregister_with_agent(unit: RunnerUnit,
                          config: FleetConfig,
                          agent: RunnerAgent,
                          token_broker: GitHubTokenBroker) -> None:
    """Remove the runner from the org through the agent itself, with a fresh removal token.

    Raises:
        TokenError: the removal token could not be obtained.
        AgentError: the agent's remove step failed.
    """
    removal_token = token_broker.request_removal_token(config.organization, config.access_token)
    agent.remove(unit, removal_token)
    rootLogger.info(f"[{unit.name}] Deregistered from {config.org_url} through the agent")

def decommission_unit(unit: RunnerUnit,
                      config: FleetConfig,
                      agent: RunnerAgent,
                      service_manager: ServiceManager,
                      token_broker: GitHubTokenBroker) -> UnitOutcome:
    """Tear down one runner unit. Never raises for failures scoped to this unit.

    The service manager path comes first. Only if it raises is the unit deregistered
    through the agent with a removal token, so that a broken local service does not
    leave a dead runner registered with GitHub. The directory is removed in every case.
    """
    if not unit.workdir.exists():
        rootLogger.info(f"[{unit.name}] {unit.workdir} does not exist, skipping.")
        return UnitOutcome(unit, UnitStatus.SKIPPED, "no working directory")

    rootLogger.info(f"[{unit.name}] Decommissioning {unit.workdir}")
    problems: List[str] = []

    # any failure of the service path, expected or not, triggers the fallback
    try:
        remove_service(unit, service_manager)
    except Exception as e:
        if not isinstance(e, (ServiceError, OSError)):
            rootLogger.debug(f"[{unit.name}] Unexpected service removal error", exc_info=True)
        rootLogger.warning(f"[{unit.name}] Service removal failed ({e!r}), falling back to agent removal.")
        try:
            deregister_with_agent(unit, config, agent, token_broker)
        except Exception as fallback_error:
            if not isinstance(fallback_error, (TokenError, AgentError)):
                rootLogger.debug(f"[{unit.name}] Unexpected agent removal error", exc_info=True)
            rootLogger.error(f"[{unit.name}] Agent removal failed too: {fallback_error!r}")
            rootLogger.error(f"[{unit.name}] The runner may still be registered with {config.org_url} and need manual cleanup.")
            problems.append("deregistration failed")

    try:
        remove_tree(unit.workdir)
        rootLogger.info(f"[{unit.name}] Deleted {unit.workdir}")
    except Exception as e:
        rootLogger.error(f"[{unit.name}] Unable to delete {unit.workdir}: {e!r}")
        problems.append("directory not deleted")

    if problems:
        return UnitOutcome(unit, UnitStatus.INCOMPLETE, ", ".join(problems))
    return UnitOutcome(unit, UnitStatus.REMOVED)
