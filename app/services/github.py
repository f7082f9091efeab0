import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from app.core.config import settings
from app.core.exceptions import GitHubAPIError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentPublicKey:
    key: str
    key_id: str


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


def _error_message(response: requests.Response) -> str:
    """GitHub puts a human readable reason in the 'message' field of error bodies."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"{response.status_code} {response.reason or 'Error'}"


class GitHubClient:
    """
    Thin wrapper over the GitHub REST endpoints used to provision an environment.

    Every method raises GitHubAPIError on a non-2xx status or a transport failure.
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.GITHUB_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": settings.GITHUB_API_VERSION,
        })

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, path)
        try:
            response = self.session.request(method, url, json=json, timeout=self.timeout)
        except (requests.RequestException, UnicodeError) as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise GitHubAPIError(str(e)) from e

        if not response.ok:
            message = _error_message(response)
            logger.info("%s %s returned %s: %s", method, path, response.status_code, message)
            raise GitHubAPIError(message, status_code=response.status_code)
        return response

    @staticmethod
    def _field(response: requests.Response, name: str) -> Any:
        try:
            return response.json()[name]
        except (ValueError, KeyError, TypeError) as e:
            raise GitHubAPIError(f"Unexpected response from GitHub: missing '{name}'") from e

    def get_repository_id(self, owner: str, repo: str) -> int:
        response = self._request("GET", f"/repos/{_segment(owner)}/{_segment(repo)}")
        repository_id = self._field(response, "id")
        try:
            return int(repository_id)
        except (TypeError, ValueError) as e:
            raise GitHubAPIError(f"Unexpected repository id from GitHub: {repository_id!r}") from e

    def environment_exists(self, owner: str, repo: str, environment: str) -> bool:
        """True if the environment exists, False on 404, raises for anything else."""
        try:
            self._request(
                "GET", f"/repos/{_segment(owner)}/{_segment(repo)}/environments/{_segment(environment)}"
            )
        except GitHubAPIError as e:
            if e.is_not_found:
                return False
            raise
        return True

    def create_or_update_environment(self, owner: str, repo: str, environment: str) -> None:
        self._request(
            "PUT", f"/repos/{_segment(owner)}/{_segment(repo)}/environments/{_segment(environment)}", json={}
        )

    def get_environment_public_key(self, repository_id: int, environment: str) -> EnvironmentPublicKey:
        response = self._request(
            "GET", f"/repositories/{repository_id}/environments/{_segment(environment)}/secrets/public-key"
        )
        key = self._field(response, "key")
        if not isinstance(key, str):
            raise GitHubAPIError("Unexpected response from GitHub: missing 'key'")
        return EnvironmentPublicKey(
            key=key,
            key_id=str(self._field(response, "key_id")),
        )

    def put_environment_secret(
        self, repository_id: int, environment: str, name: str, encrypted_value: str, key_id: str
    ) -> None:
        """Create or overwrite an environment secret."""
        self._request(
            "PUT",
            f"/repositories/{repository_id}/environments/{_segment(environment)}/secrets/{_segment(name)}",
            json={"encrypted_value": encrypted_value, "key_id": key_id},
        )

    def create_environment_variable(self, repository_id: int, environment: str, name: str, value: str) -> None:
        """Create an environment variable. GitHub answers 422 if it already exists."""
        self._request(
            "POST",
            f"/repositories/{repository_id}/environments/{_segment(environment)}/variables",
            json={"name": name, "value": value},
        )

    def update_environment_variable(self, repository_id: int, environment: str, name: str, value: str) -> None:
        self._request(
            "PUT",
            f"/repositories/{repository_id}/environments/{_segment(environment)}/variables/{_segment(name)}",
            json={"name": name, "value": value},
        )
