"""Exceptions raised inside the authentication gateway"""


class GatewayError(Exception):
    """Base class for gateway failures."""


class ConfigurationError(GatewayError):
    """A required collaborator (provider client, allow-list store) is not configured."""


class ProviderExchangeError(GatewayError):
    """The identity provider rejected, timed out, or garbled a credential exchange."""


class AllowlistLookupError(GatewayError):
    """The allow-list store could not answer a membership query."""


class SessionPersistError(GatewayError):
    """Session material could not be written to the response cookies."""


class RedirectValidationError(GatewayError):
    """A redirect target is malformed, absolute, or belongs to another tenant."""
