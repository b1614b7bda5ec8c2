""" The init and destroy batches: sequential loops over the fleet's units. """

from __future__ import annotations

import logging

from fleettools.artifact import ensure_artifact
from fleettools.errors import FleetError, UnitError
from fleettools.fleet_summary import FleetSummary, UnitOutcome, UnitStatus
from fleettools.runner_unit import fleet_units
from fleettools.unit_decommissioner import decommission_unit
from fleettools.unit_provisioner import provision_unit

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.credentials import CredentialProvider
    from fleettools.fleet_config import FleetConfig
    from fleettools.runner_agent import RunnerAgent
    from fleettools.service_managers import ServiceManager
    from ghtools.ghtools import GitHubTokenBroker

rootLogger = logging.getLogger()

def init_fleet(config: FleetConfig,
               token_broker: GitHubTokenBroker,
               agent: RunnerAgent,
               service_manager: ServiceManager,
               credentials: CredentialProvider) -> FleetSummary:
    """Provision units 1..N.

    The registration token and the runner archive are batch-wide: any error while
    getting them propagates and no unit is touched. After that, each unit's
    failure is logged and recorded and the loop moves on.
    """
    rootLogger.info(f"Provisioning {config.num_runners} runner(s) for {config.org_url} in {config.base_dir}")

    registration_token = token_broker.request_registration_token(config.organization, config.access_token)
    rootLogger.info("Obtained runner registration token.")

    config.base_dir.mkdir(parents=True, exist_ok=True)
    ensure_artifact(config.artifact_path, config.download_url)

    summary = FleetSummary('init')
    for unit in fleet_units(config):
        try:
            outcome = provision_unit(unit, registration_token, config, agent, service_manager, credentials)
        except UnitError as e:
            rootLogger.error(f"Provisioning of {unit.name} failed: {e}")
            outcome = UnitOutcome(unit, UnitStatus.FAILED, str(e))
        except Exception as e:
            rootLogger.exception(f"Provisioning of {unit.name} failed unexpectedly.")
            outcome = UnitOutcome(unit, UnitStatus.FAILED, repr(e))
        summary.record(outcome)

    summary.log()
    return summary

def destroy_fleet(config: FleetConfig,
                  agent: RunnerAgent,
                  service_manager: ServiceManager,
                  token_broker: GitHubTokenBroker) -> FleetSummary:
    """Decommission units 1..N, best effort.

    Raises:
        FleetError: the base directory does not exist, before any unit is touched.
    """
    if not config.base_dir.is_dir():
        raise FleetError(f"Base directory {config.base_dir} does not exist, nothing to destroy.")

    rootLogger.info(f"Decommissioning {config.num_runners} runner(s) of {config.org_url} in {config.base_dir}")

    summary = FleetSummary('destroy')
    for unit in fleet_units(config):
        summary.record(decommission_unit(unit, config, agent, service_manager, token_broker))

    summary.log()
    return summary
