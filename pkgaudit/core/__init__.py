"""Audit pipeline core: provisioning, process transport, orchestration."""
