"""
Exceptions raised by ldapload.

Only setup failures and configuration problems are raised out of the search
driver; ordinary search errors are reported in the diagnostics and never
propagate.
"""


class LdapLoadError(Exception):
    """Base class for all ldapload errors."""


class ImproperlyConfigured(LdapLoadError):
    """The search parameters are missing, malformed or inconsistent."""


class FatalSearchError(LdapLoadError):
    """
    A failure that must end the whole process with a non-zero status.

    Args:
        msg: human readable description

    Keyword Args:
        code: the LDAP result code that caused the failure, if any

    """

    def __init__(self, msg: str, code: int | None = None) -> None:
        super().__init__(msg)
        #: The LDAP result code behind this failure, if there was one.
        self.code = code


class BindFailed(FatalSearchError):
    """The bind failed with a non-transient error, or we ran out of retries."""


class NoValuesFound(FatalSearchError):
    """The initial search of a randomized run returned no attribute values."""
