import logging
import threading
from typing import Callable, Generator, Iterator, List, Optional, Sequence

from app.core.config import settings
from app.core.exceptions import GitHubAPIError, ProvisioningValidationError, SecretEncryptionError
from app.models.provisioning import (
    ConnectionParams,
    Item,
    ItemKind,
    ProvisionEvent,
    ProvisionRun,
    ResultEntry,
    ResultKind,
    RunStatus,
)
from app.services.crypto import encrypt_secret
from app.services.github import EnvironmentPublicKey, GitHubClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GitHubClient]


def valid_items(items: Sequence[Item]) -> List[Item]:
    """Drop blank rows and trim the names of the rest."""
    return [Item(name=item.name.strip(), value=item.value) for item in items if item.is_valid]


class Provisioner:
    """
    Pushes a list of secrets or variables into a repository environment.

    A run resolves the repository id, makes sure the environment exists and
    then creates or updates every item in order. Repository and environment
    failures end the run; item failures are recorded and the run moves on.
    """

    def __init__(self, client_factory: Optional[ClientFactory] = None, cache_public_key: Optional[bool] = None):
        self.client_factory = client_factory or GitHubClient
        self.cache_public_key = settings.CACHE_PUBLIC_KEY if cache_public_key is None else cache_public_key

    def prepare(self, params: ConnectionParams, items: Sequence[Item]) -> List[Item]:
        """
        Check the form before anything is sent to GitHub.

        Raises:
            ProvisioningValidationError: If a connection field is blank or no item is valid
        """
        missing = params.missing_fields()
        if missing:
            raise ProvisioningValidationError(f"Please fill in all required fields: {', '.join(missing)}")
        if not params.token.strip().isascii():
            raise ProvisioningValidationError("The access token contains characters that cannot be sent in a header")

        prepared = valid_items(items)
        if not prepared:
            raise ProvisioningValidationError("Please add at least one valid key-value pair")
        return prepared

    def run(
        self,
        params: ConnectionParams,
        items: Sequence[Item],
        cancel_event: Optional[threading.Event] = None,
    ) -> ProvisionRun:
        """Execute a whole run and return its final state."""
        run = ProvisionRun()
        for _ in self.iter_run(params, items, run=run, cancel_event=cancel_event):
            pass
        return run

    def iter_run(
        self,
        params: ConnectionParams,
        items: Sequence[Item],
        run: Optional[ProvisionRun] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[ProvisionEvent]:
        """
        Execute a run, yielding an event after every change to its state.

        Validation errors are raised before the first event. Nothing else escapes:
        GitHub and encryption failures become error entries in run.results.
        """
        prepared = self.prepare(params, items)
        run = run if run is not None else ProvisionRun()
        run.progress.total = len(prepared) + 2
        run.progress.current = 0
        run.progress.status = RunStatus.RUNNING
        run.progress.message = "Initializing..."
        logger.info(
            "Provisioning %d %s into %s/%s environment %r",
            len(prepared), params.kind.value, params.owner, params.repo, params.environment,
        )

        client = self.client_factory(params.token)
        try:
            yield from self._execute(client, params, prepared, run, cancel_event)
        finally:
            client.close()

    def _execute(
        self,
        client: GitHubClient,
        params: ConnectionParams,
        items: List[Item],
        run: ProvisionRun,
        cancel_event: Optional[threading.Event],
    ) -> Iterator[ProvisionEvent]:
        try:
            yield self._advance(run, 1, "Getting repository information...")
            repository_id = client.get_repository_id(params.owner, params.repo)
            run.repository_id = repository_id
            yield self._record(run, ResultKind.SUCCESS, f"Repository ID: {repository_id}")

            yield self._advance(run, 2, "Checking environment...")
            yield from self._ensure_environment(client, params, run)
        except GitHubAPIError as e:
            logger.error("Provisioning %s/%s aborted: %s", params.owner, params.repo, e.message)
            run.progress.status = RunStatus.FAILED
            run.progress.message = "Failed"
            yield self._record(run, ResultKind.ERROR, f"Error: {e.message}")
            return

        cached_key: Optional[EnvironmentPublicKey] = None
        for index, item in enumerate(items):
            if cancel_event is not None and cancel_event.is_set():
                skipped = len(items) - index
                logger.info("Run cancelled with %d item(s) left", skipped)
                run.progress.status = RunStatus.CANCELLED
                run.progress.message = "Cancelled"
                yield self._record(run, ResultKind.WARNING, f"Run cancelled, {skipped} item(s) skipped")
                return

            yield self._advance(run, 3 + index, f"Creating {params.kind.label}: {item.name}...")
            if params.kind is ItemKind.SECRETS:
                known_key = cached_key if self.cache_public_key else None
                cached_key = yield from self._upsert_secret(client, params, repository_id, item, run, known_key)
            else:
                yield from self._upsert_variable(client, params, repository_id, item, run)

        run.progress.status = RunStatus.COMPLETED
        run.progress.message = "Completed"
        logger.info("Provisioning %s/%s completed", params.owner, params.repo)
        yield ProvisionEvent(progress=run.progress.model_copy())

    def _ensure_environment(
        self, client: GitHubClient, params: ConnectionParams, run: ProvisionRun
    ) -> Iterator[ProvisionEvent]:
        environment = params.environment
        if client.environment_exists(params.owner, params.repo, environment):
            yield self._record(run, ResultKind.SUCCESS, f'Environment "{environment}" exists')
            return

        yield self._record(run, ResultKind.WARNING, f'Creating environment "{environment}"...')
        client.create_or_update_environment(params.owner, params.repo, environment)
        logger.info("Created environment %r in %s/%s", environment, params.owner, params.repo)
        yield self._record(run, ResultKind.SUCCESS, f'Environment "{environment}" created')

    def _upsert_secret(
        self,
        client: GitHubClient,
        params: ConnectionParams,
        repository_id: int,
        item: Item,
        run: ProvisionRun,
        public_key: Optional[EnvironmentPublicKey],
    ) -> Generator[ProvisionEvent, None, Optional[EnvironmentPublicKey]]:
        """Seal and store one secret. Returns the key it used, or None if the key was unusable."""
        try:
            if public_key is None:
                public_key = client.get_environment_public_key(repository_id, params.environment)
            encrypted_value = encrypt_secret(public_key.key, item.value)
        except (GitHubAPIError, SecretEncryptionError) as e:
            logger.warning("Could not encrypt secret %s: %s", item.name, e)
            yield self._record(
                run, ResultKind.ERROR, f"Failed to encrypt secret {item.name}: {_reason(e)}", item.name
            )
            return None

        try:
            client.put_environment_secret(
                repository_id, params.environment, item.name, encrypted_value, public_key.key_id
            )
        except GitHubAPIError as e:
            logger.warning("Could not set secret %s: %s", item.name, e.message)
            yield self._record(
                run, ResultKind.ERROR, f"Failed to encrypt secret {item.name}: {e.message}", item.name
            )
            return public_key

        yield self._record(run, ResultKind.SUCCESS, f"Secret {item.name} processed successfully", item.name)
        return public_key

    def _upsert_variable(
        self,
        client: GitHubClient,
        params: ConnectionParams,
        repository_id: int,
        item: Item,
        run: ProvisionRun,
    ) -> Iterator[ProvisionEvent]:
        try:
            try:
                client.create_environment_variable(repository_id, params.environment, item.name, item.value)
            except GitHubAPIError as e:
                if not e.is_unprocessable:
                    raise
                yield self._record(run, ResultKind.WARNING, f"Variable {item.name} exists, updating...", item.name)
                client.update_environment_variable(repository_id, params.environment, item.name, item.value)
        except GitHubAPIError as e:
            logger.warning("Could not set variable %s: %s", item.name, e.message)
            yield self._record(run, ResultKind.ERROR, f"Failed to create {item.name}: {e.message}", item.name)
            return

        yield self._record(run, ResultKind.SUCCESS, f"Variable {item.name} processed successfully", item.name)

    @staticmethod
    def _advance(run: ProvisionRun, step: int, message: str) -> ProvisionEvent:
        progress = run.progress
        progress.current = min(max(progress.current, step), progress.total)
        progress.message = message
        return ProvisionEvent(progress=progress.model_copy())

    @staticmethod
    def _record(run: ProvisionRun, kind: ResultKind, message: str, item: Optional[str] = None) -> ProvisionEvent:
        entry = ResultEntry(kind=kind, message=message, item=item)
        run.results.append(entry)
        return ProvisionEvent(progress=run.progress.model_copy(), result=entry)


def _reason(error: Exception) -> str:
    if isinstance(error, GitHubAPIError):
        return error.message
    return str(error)


provisioner = Provisioner()
