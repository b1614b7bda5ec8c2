""" Calls into the GitHub REST API for self-hosted runner tokens. """

from __future__ import annotations

import logging
import requests

from fleettools.errors import (AuthError, AuthorizationError, NotFoundError,
                               ProtocolError, TokenError, TransientError)

from typing import Dict, Type

rootLogger = logging.getLogger()

GITHUB_API_VERSION = "2022-11-28"

# status codes with a dedicated exception, anything else non-2xx is transient
STATUS_ERRORS: Dict[int, Type[TokenError]] = {
    401: AuthError,
    403: AuthorizationError,
    404: NotFoundError,
}

def get_header(gh_token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {gh_token.strip()}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }

def gha_runners_api_url(api_url: str, org: str) -> str:
    return f"{api_url.rstrip('/')}/orgs/{org}/actions/runners"

class GitHubTokenBroker:
    """Requests short-lived runner registration and removal tokens for an organization.

    No retries are done here: a failure is reported to the caller, which decides
    whether it is fatal.
    """
    api_url: str

    def __init__(self, api_url: str = "https://api.github.com") -> None:
        self.api_url = api_url

    def request_registration_token(self, org: str, gh_token: str) -> str:
        """ Token that lets a new runner register with `org`. """
        return self._request_token(org, gh_token, "registration-token")

    def request_removal_token(self, org: str, gh_token: str) -> str:
        """ Token that lets a runner deregister itself from `org`. """
        return self._request_token(org, gh_token, "remove-token")

    def _request_token(self, org: str, gh_token: str, endpoint: str) -> str:
        url = f"{gha_runners_api_url(self.api_url, org)}/{endpoint}"
        rootLogger.debug(f"POST {url}")

        try:
            r = requests.post(url, headers=get_header(gh_token))
        except requests.exceptions.RequestException as e:
            raise TransientError(f"Unable to reach {url}: {e}") from e

        if not (200 <= r.status_code < 300):
            error_cls = STATUS_ERRORS.get(r.status_code, TransientError)
            raise error_cls(f"HTTPS error from {url}: {r.status_code} {r.text}", r.status_code)

        try:
            res_dict = r.json()
        except ValueError as e:
            raise ProtocolError(f"Response from {url} is not JSON", r.status_code) from e

        token = res_dict.get("token") if isinstance(res_dict, dict) else None
        if not isinstance(token, str) or not token:
            raise ProtocolError(f"Response from {url} has no 'token' field", r.status_code)

        rootLogger.debug(f"Received {endpoint} for {org} (expires {res_dict.get('expires_at', 'unknown')})")
        return token
