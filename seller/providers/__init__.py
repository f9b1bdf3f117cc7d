"""Clients for the routing service and chain nodes."""
