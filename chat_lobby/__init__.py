"""Authoritative avatar lobby: shared wire protocol, server and terminal client."""
