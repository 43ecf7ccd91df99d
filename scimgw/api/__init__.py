"""HTTP surface: SCIM blueprint, health checks and error handlers."""
