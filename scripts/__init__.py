"""Maintenance entry points for RPGF deployments."""
