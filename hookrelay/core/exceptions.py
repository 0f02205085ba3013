"""Errors raised before any delivery attempt is made."""


class HookrelayError(Exception):
    """Base class for hookrelay errors."""


class ConfigurationError(HookrelayError):
    """A webhook, route or action is missing required settings or uses unknown values.

    Raised synchronously to the caller; never recorded as a delivery attempt.
    """
