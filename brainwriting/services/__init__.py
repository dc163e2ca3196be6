"""Coordination services: registry, leases, rotation, sweeping, and the facade."""
