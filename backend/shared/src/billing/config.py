"""Runtime configuration for the billing engine.

Plain settings come from environment variables. Secrets are resolved
lazily: an environment override wins, otherwise the value is read from
SSM Parameter Store under ``/billing/{environment}/``. There are no
default credentials; a secret that cannot be resolved raises
ConfigurationError when first requested.
"""

import json
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

from billing.models.errors import ConfigurationError
from billing.services.dynamodb import table_prefix
from billing.services.ssm_service import SSMService, SSMServiceError, get_ssm_service


class PlanPrice(BaseModel):
    """Price of one billing period of a plan."""

    amount: int = Field(..., ge=0, description="Amount in smallest currency unit")
    currency: str = Field(default="INR")


DEFAULT_PLAN_CATALOG: dict[str, PlanPrice] = {
    "pro": PlanPrice(amount=99900, currency="INR"),
}

# Secret name -> (environment override, name under the SSM environment prefix)
SECRET_SOURCES: dict[str, tuple[str, str]] = {
    "gateway_key_secret": ("GATEWAY_KEY_SECRET", "gateway/key_secret"),
    "webhook_secret": ("GATEWAY_WEBHOOK_SECRET", "gateway/webhook_secret"),
    "renewal_trigger_token": ("RENEWAL_TRIGGER_TOKEN", "renewal/trigger_token"),
    "stripe_secret_key": ("STRIPE_SECRET_KEY", "stripe/secret_key"),
}


class Settings(BaseModel):
    """Non-secret settings."""

    environment: str = "dev"
    table_prefix: str = "billing-dev"
    notification_topic_arn: Optional[str] = None
    payment_session_ttl_minutes: int = Field(default=10, gt=0)
    default_trial_days: int = Field(default=7, ge=0)
    plan_catalog: dict[str, PlanPrice] = Field(
        default_factory=lambda: dict(DEFAULT_PLAN_CATALOG)
    )


def load_settings() -> Settings:
    """Build Settings from the process environment.

    ``PLAN_CATALOG`` may hold a JSON object such as
    ``{"pro": {"amount": 99900, "currency": "INR"}}``.

    Raises:
        ConfigurationError: If PLAN_CATALOG is not valid JSON
    """
    environment = os.getenv("ENVIRONMENT", "dev")
    catalog = dict(DEFAULT_PLAN_CATALOG)
    raw_catalog = os.getenv("PLAN_CATALOG")
    if raw_catalog:
        try:
            parsed = json.loads(raw_catalog)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"PLAN_CATALOG is not valid JSON: {e}") from e
        catalog = {plan: PlanPrice(**price) for plan, price in parsed.items()}

    return Settings(
        environment=environment,
        table_prefix=table_prefix(environment),
        notification_topic_arn=os.getenv("NOTIFICATION_TOPIC_ARN") or None,
        payment_session_ttl_minutes=int(os.getenv("PAYMENT_SESSION_TTL_MINUTES", "10")),
        default_trial_days=int(os.getenv("DEFAULT_TRIAL_DAYS", "7")),
        plan_catalog=catalog,
    )


class SecretStore:
    """Resolves named secrets from the environment or SSM."""

    def __init__(
        self,
        environment: str,
        ssm: SSMService | None = None,
    ) -> None:
        """Initialize the secret store.

        Args:
            environment: Environment name used in SSM paths
            ssm: Parameter Store reader, defaults to the shared one for
                ``environment``
        """
        self._environment = environment
        self._ssm = ssm
        self._values: dict[str, str] = {}

    def get(self, name: str) -> str:
        """Return a secret by name.

        Raises:
            ConfigurationError: If the secret is unknown or cannot be resolved
        """
        if name in self._values:
            return self._values[name]
        if name not in SECRET_SOURCES:
            raise ConfigurationError(f"Unknown secret: {name}")

        env_var, ssm_name = SECRET_SOURCES[name]
        value = os.getenv(env_var)
        if not value:
            ssm = self._ssm or get_ssm_service(self._environment)
            try:
                value = ssm.get_secret(ssm_name)
            except SSMServiceError as e:
                raise ConfigurationError(
                    f"Secret {name} is not configured (set {env_var} or {e.path})"
                ) from e

        self._values[name] = value
        return value

    @property
    def gateway_key_secret(self) -> str:
        return self.get("gateway_key_secret")

    @property
    def webhook_secret(self) -> str:
        return self.get("webhook_secret")

    @property
    def renewal_trigger_token(self) -> str:
        return self.get("renewal_trigger_token")

    @property
    def stripe_secret_key(self) -> str:
        return self.get("stripe_secret_key")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide Settings."""
    return load_settings()


@lru_cache(maxsize=1)
def get_secret_store() -> SecretStore:
    """Get the process-wide SecretStore."""
    return SecretStore(get_settings().environment)
