""" Where the runner services get their logon identity from. """

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field

from util.io import fleet_getpass

from typing import Callable, Optional, TYPE_CHECKING
if TYPE_CHECKING:
    from fleettools.fleet_config import FleetConfig

rootLogger = logging.getLogger()

@dataclass(frozen=True)
class ServiceIdentity:
    """ Account the runner service logs on as. """
    username: str
    password: str = field(repr=False)

class CredentialProvider(metaclass=abc.ABCMeta):
    """Resolves the identity the runner services run under.

    Returning ``None`` means the service runs under the default account of
    the invoking context (no logon flags are passed to the agent).
    """

    @abc.abstractmethod
    def resolve_service_identity(self) -> Optional[ServiceIdentity]:
        raise NotImplementedError

class StaticCredentialProvider(CredentialProvider):
    """ Always hands out the identity it was built with. """
    identity: Optional[ServiceIdentity]

    def __init__(self, identity: Optional[ServiceIdentity] = None) -> None:
        self.identity = identity

    def resolve_service_identity(self) -> Optional[ServiceIdentity]:
        return self.identity

class TerminalCredentialProvider(CredentialProvider):
    """Uses the configured service account, prompting on the terminal for a missing password.

    The prompted password is kept for the rest of the run so a fleet of N units
    only prompts once.
    """
    username: Optional[str]
    password: Optional[str]
    prompt: Callable[[str], str]

    def __init__(self, config: FleetConfig, prompt: Callable[[str], str] = fleet_getpass) -> None:
        self.username = config.service_account_username
        self.password = config.service_account_password or None
        self.prompt = prompt

    def resolve_service_identity(self) -> Optional[ServiceIdentity]:
        if not self.username:
            return None

        if self.password is None:
            rootLogger.debug(f"No password configured for service account {self.username}, prompting.")
            self.password = self.prompt(f"Password for runner service account {self.username}: ")

        return ServiceIdentity(self.username, self.password)
