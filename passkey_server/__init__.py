# (c) Copyright Datacraft, 2026
"""Passwordless authentication server built on WebAuthn passkeys."""
