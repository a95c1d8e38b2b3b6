"""Credential-layer exceptions."""

from __future__ import annotations


class CredentialError(Exception):
    """Base class for credential decoding, refresh and resolution failures."""


class CredentialConfigurationError(CredentialError):
    """Refresh preconditions are not met (wrong type, missing refresh token or client credentials)."""


class MissingAccessTokenError(CredentialError):
    """No usable bearer token could be resolved from a stored credential."""
