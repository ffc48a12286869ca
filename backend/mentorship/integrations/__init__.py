"""Clients for collaborators owned by other subsystems."""
