"""HTTP and scheduled entry points for the billing engine."""
