""" This file manages the configuration of the runner fleet, i.e. `config_fleet.yaml`. """

from __future__ import annotations

import logging
import os
import pprint
import sys
import yaml
from dataclasses import dataclass, field
from pathlib import Path

from fleettools.errors import ConfigError
from fleettools.credentials import CredentialProvider, TerminalCredentialProvider
from fleettools.runner_agent import RunnerAgent
from fleettools.service_managers import ServiceManager, service_manager_for_platform
from ghtools.ghtools import GitHubTokenBroker
from util.configvalidation import validate

# imports needed for python type checking
from typing import Any, Dict, Optional
import argparse # this is not within a if TYPE_CHECKING: scope so the `register_task` in runnerfleet can evaluate it's annotation

rootLogger = logging.getLogger()

RUNNER_RELEASES_URL = "https://github.com/actions/runner/releases/download"
ACCESS_TOKEN_ENV_VAR = "RUNNERFLEET_ACCESS_TOKEN"
FLEET_SCHEMA_PATH = Path(__file__).resolve().parent / "config_fleet_schema.yaml"

def resolve_platform(platform: str) -> str:
    """ Map the `auto` platform setting onto the platform we are running on. """
    if platform == 'auto':
        return 'windows' if sys.platform.startswith('win') else 'linux'
    return platform

@dataclass(frozen=True)
class FleetConfig:
    """Everything needed to provision or tear down the fleet. Built once per invocation.

    Attributes:
        organization: GitHub organization that owns the runners.
        access_token: Personal access token used for the token endpoints.
        agent_version: actions/runner release (without the leading 'v').
        num_runners: Number of runner units, N >= 1.
        base_dir: Directory holding the archive and one directory per unit.
        runner_group: Runner group the units join.
        base_url: Web URL of the GitHub instance, used to build the org URL.
        api_url: REST API URL of the GitHub instance.
        runner_name_prefix: Unit i is named prefix + i.
        runner_label: Single label that replaces the agent's default labels.
        platform: 'windows' or 'linux'.
        service_account_username: Logon account of the runner services, if any.
        service_account_password: Password of that account. Empty means prompt.
        service_lookup_delay_secs: Wait before looking up a freshly registered service.
    """
    organization: str
    access_token: str = field(repr=False)
    agent_version: str
    num_runners: int
    base_dir: Path
    runner_group: str = "Default"
    base_url: str = "https://github.com"
    api_url: str = "https://api.github.com"
    runner_name_prefix: str = "runner-"
    runner_label: str = "self-hosted-fleet"
    platform: str = "linux"
    service_account_username: Optional[str] = None
    service_account_password: Optional[str] = field(default=None, repr=False)
    service_lookup_delay_secs: float = 5.0

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> FleetConfig:
        """ Build from an already validated `config_fleet.yaml` document. """
        if environ is None:
            environ = dict(os.environ)

        github = config_dict['github']
        runner = config_dict['runner']
        service_account = config_dict.get('service_account') or {}

        access_token = environ.get(ACCESS_TOKEN_ENV_VAR) or github.get('access_token') or ""
        if not access_token:
            raise ConfigError(f"No GitHub access token: set github.access_token or export {ACCESS_TOKEN_ENV_VAR}")

        optional: Dict[str, Any] = {}
        for key, value in (('runner_group', runner.get('runner_group')),
                           ('base_url', github.get('base_url')),
                           ('api_url', github.get('api_url')),
                           ('runner_name_prefix', runner.get('name_prefix')),
                           ('runner_label', runner.get('label')),
                           ('service_lookup_delay_secs', runner.get('service_lookup_delay_secs'))):
            if value is not None:
                optional[key] = value

        return cls(
            organization=github['organization'],
            access_token=access_token,
            agent_version=str(runner['version']).lstrip('v'),
            num_runners=runner['num_runners'],
            base_dir=Path(runner['base_dir']).expanduser(),
            platform=resolve_platform(runner.get('platform') or 'auto'),
            service_account_username=service_account.get('username') or None,
            service_account_password=service_account.get('password') or "",
            **optional)

    @property
    def is_windows(self) -> bool:
        return self.platform == 'windows'

    @property
    def archive_name(self) -> str:
        """ Name of the actions/runner release archive for this platform and version. """
        if self.is_windows:
            return f"actions-runner-win-x64-{self.agent_version}.zip"
        return f"actions-runner-linux-x64-{self.agent_version}.tar.gz"

    @property
    def download_url(self) -> str:
        return f"{RUNNER_RELEASES_URL}/v{self.agent_version}/{self.archive_name}"

    @property
    def artifact_path(self) -> Path:
        """ Shared copy of the archive, validated once and copied into every unit. """
        return self.base_dir / self.archive_name

    @property
    def org_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.organization}"


def load_fleet_config(config_path: str, environ: Optional[Dict[str, str]] = None) -> FleetConfig:
    """Read, validate and freeze a `config_fleet.yaml` file.

    Raises:
        ConfigError: the file is missing, is not yaml or does not match the schema.
    """
    if not os.path.isfile(config_path):
        raise ConfigError(f"Fleet config file {config_path} does not exist")

    try:
        with open(config_path, "r") as yaml_file:
            config_dict = yaml.safe_load(yaml_file)
    except yaml.YAMLError as e:
        raise ConfigError(f"Unable to parse {config_path}") from e

    if not isinstance(config_dict, dict):
        raise ConfigError(f"{config_path} is empty or is not a mapping")

    errors = validate(str(FLEET_SCHEMA_PATH), src_data=config_dict)
    if errors:
        mismatches = "\n".join(f"    {error}" for error in errors)
        raise ConfigError(f"{config_path} does not match the schema in {FLEET_SCHEMA_PATH}:\n{mismatches}")

    return FleetConfig.from_dict(config_dict, environ)


class FleetConfigFile:
    """Class representing the fleet config file and the collaborators built from it.

    Attributes:
        args: Args passed by the top-level argparse.
        fleet: The frozen configuration.
        token_broker: Client for the GitHub runner token endpoints.
        agent: Wrapper around the runner agent's configuration executable.
        service_manager: OS service manager for the configured platform.
        credentials: Source of the service logon identity.
    """
    args: argparse.Namespace
    fleet: FleetConfig
    token_broker: GitHubTokenBroker
    agent: RunnerAgent
    service_manager: ServiceManager
    credentials: CredentialProvider

    def __init__(self, args: argparse.Namespace) -> None:
        """
        Args:
            args: Object holding arg attributes.
        """
        self.args = args
        self.fleet = load_fleet_config(args.fleetconfigfile)
        rootLogger.debug(f"Loaded fleet config from {args.fleetconfigfile}: {self.fleet!r}")

        self.token_broker = GitHubTokenBroker(self.fleet.api_url)
        self.agent = RunnerAgent(self.fleet.platform)
        self.service_manager = service_manager_for_platform(self.fleet.platform)
        self.credentials = TerminalCredentialProvider(self.fleet)

    def __repr__(self) -> str:
        return f"< {type(self)}(file={self.args.fleetconfigfile!r}, fleet={self.fleet!r}) @{id(self)} >"

    def __str__(self) -> str:
        return pprint.pformat(vars(self), width=1, indent=10)
