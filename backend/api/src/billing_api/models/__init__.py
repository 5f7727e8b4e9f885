"""API-specific request/response models.

Domain models (VerificationResult, SubscriptionSnapshot, ...) live in
billing.models and are reused here where they fit. JSON bodies use
camelCase field names; Python code uses snake_case.

Modules:
- payments: checkout, payment session and verification models
- subscriptions: lifecycle operation models
- operations: webhook acknowledgement, sweep and admin models
"""

__all__: list[str] = []
