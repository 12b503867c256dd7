"""Authoritative lobby server."""
