"""Lobby client: networking, reconciliation and terminal front end."""
