"""Citizen registry: registration, identity verification review and reapplication."""
