"""Inbound gateway webhook handlers."""
