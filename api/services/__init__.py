"""Dependency wrappers; every external call passes through a circuit breaker."""
