"""Parameter Store access for billing secrets.

Every secret lives under ``/billing/{environment}/`` as a SecureString.
Callers name secrets relative to that prefix (``gateway/webhook_secret``);
the service owns the path layout and keeps decrypted values for the life
of the instance.
"""

import logging
from functools import lru_cache
from typing import Any

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

PARAMETER_ROOT = "/billing"


class SSMServiceError(Exception):
    """Raised when a billing parameter cannot be read."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path


class SSMService:
    """Reads one environment's billing secrets from SSM Parameter Store.

    Usage:
        ssm = get_ssm_service("prod")
        secret = ssm.get_secret("gateway/key_secret")
    """

    def __init__(self, environment: str, client: Any | None = None) -> None:
        """Initialize the service.

        Args:
            environment: Environment segment of the parameter path
            client: boto3 SSM client, created if omitted
        """
        if not environment:
            raise ValueError("environment is required")
        self.environment = environment
        self.prefix = f"{PARAMETER_ROOT}/{environment}/"
        self._client = client or boto3.client("ssm")
        self._values: dict[str, str] = {}

    def path_for(self, name: str) -> str:
        """Full parameter path of a secret name."""
        return self.prefix + name.strip("/")

    def get_secret(self, name: str, *, refresh: bool = False) -> str:
        """Return a decrypted secret by its name under this environment.

        Args:
            name: Secret name relative to the environment prefix
            refresh: Bypass the cached value

        Raises:
            SSMServiceError: If the parameter is missing, unreadable or empty
        """
        path = self.path_for(name)
        if not refresh and path in self._values:
            return self._values[path]

        logger.info("Fetching SSM parameter: %s", path)
        try:
            response = self._client.get_parameter(Name=path, WithDecryption=True)
        except ClientError as e:
            raise _service_error(e, path) from e

        value = response["Parameter"]["Value"]
        if not value:
            raise SSMServiceError(f"SSM parameter is empty: {path}", path)
        self._values[path] = value
        return value

    def clear_cache(self) -> None:
        self._values.clear()
        logger.info("SSM parameter cache cleared for %s", self.prefix)


def _service_error(error: ClientError, path: str) -> SSMServiceError:
    code = error.response.get("Error", {}).get("Code", "Unknown")
    if code == "ParameterNotFound":
        return SSMServiceError(f"SSM parameter not found: {path}", path)
    if code == "AccessDeniedException":
        return SSMServiceError(
            f"Access denied to SSM parameter: {path}. "
            "Check IAM permissions for ssm:GetParameter.",
            path,
        )
    return SSMServiceError(f"Failed to retrieve SSM parameter {path}: {error}", path)


@lru_cache(maxsize=None)
def get_ssm_service(environment: str) -> SSMService:
    """Get the shared SSMService for an environment."""
    return SSMService(environment)
