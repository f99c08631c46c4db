"""Service layer for provisioning and queries."""
