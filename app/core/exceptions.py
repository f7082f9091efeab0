from typing import Optional


class ProvisionerException(Exception):
    pass


class ProvisioningValidationError(ProvisionerException):
    """Raised before a run starts when the submitted form is incomplete."""
    pass


class GitHubAPIError(ProvisionerException):
    """
    A failed call to the GitHub REST API.

    status_code is None when the request never produced a response
    (connection refused, timeout, ...).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_unprocessable(self) -> bool:
        return self.status_code == 422


class SecretEncryptionError(ProvisionerException):
    pass
