"""
Search session parameters.

This module provides the :py:class:`SearchOptions` class, which holds every
parameter of one load-generation run, and validates them once on
construction.  An instance never changes after it has been built.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import DEFAULT_IGNORE, parse_codes
from .exceptions import ImproperlyConfigured

#: Inner loop count used when none is given.
DEFAULT_LOOPS: int = 100
#: Outer loop count used when none is given.
DEFAULT_OUTER_LOOPS: int = 1
#: Retry budget used when none is given.
DEFAULT_RETRIES: int = 0
#: Host used when only a port is given.
DEFAULT_HOST: str = "localhost"
#: Attributes requested by fixed-filter searches.
SEARCH_ATTRIBUTES: tuple[str, ...] = ("cn", "sn")
#: The allowed values of :py:attr:`SearchOptions.tls_verify`.
TLS_VERIFY_CHOICES: tuple[str, ...] = ("never", "always")


def build_uri(uri: str | None, host: str | None, port: int | None) -> str:
    """
    Work out the server URI from either an explicit URI or a host and port.

    Args:
        uri: an LDAP URI; wins if given
        host: the server hostname; defaults to :py:data:`DEFAULT_HOST`
        port: the server port

    Raises:
        ImproperlyConfigured: neither ``uri`` nor ``port`` was given

    Returns:
        The LDAP URI to connect to.

    """
    if uri:
        return uri
    if port is None:
        msg = "Either a server URI or a port is required"
        raise ImproperlyConfigured(msg)
    return f"ldap://{host or DEFAULT_HOST}:{port}"


@dataclass(frozen=True)
class SearchOptions:
    """
    Everything one run of the search tester needs to know.

    Construct it with keyword arguments; validation happens immediately and
    raises :py:class:`~ldapload.exceptions.ImproperlyConfigured` on bad input.

    Raises:
        ImproperlyConfigured: a required parameter is missing, the filter is
            empty, a count is negative, ``tls_verify`` is invalid or the CA
            certificate file does not exist.

    """

    #: The LDAP URI of the server.
    uri: str
    #: The search base.
    base: str
    #: The search filter for fixed-filter searches, and for the initial search
    #: of randomized runs.
    filterstr: str
    #: The DN to bind as.
    binddn: str | None = None
    #: The password for :py:attr:`binddn`.
    password: str | None = field(default=None, repr=False)
    #: If set, do randomized-filter searches on this attribute.
    attribute: str | None = None
    #: How many searches each operation performs.
    loops: int = DEFAULT_LOOPS
    #: How many times the whole operation is repeated.
    outer_loops: int = DEFAULT_OUTER_LOOPS
    #: How many times a transient failure may be retried per operation.
    retries: int = DEFAULT_RETRIES
    #: Seconds to sleep before each retry.
    delay: int = 0
    #: Let the client library chase referrals.
    chase_referrals: bool = False
    #: Duplicate error logging level.  With 1 or more, repeated ignored
    #: errors are logged every time, not just the first time.
    force: int = 0
    #: Ask for attribute types only, without values.
    no_attrs: bool = False
    #: Skip the bind and search anonymously.
    anonymous: bool = False
    #: Comma separated result codes to tolerate on searches.
    ignore: str = DEFAULT_IGNORE
    #: Network timeout in seconds; ``None`` leaves the library default alone.
    timeout: float | None = None
    #: Issue StartTLS before binding.
    use_starttls: bool = False
    #: Certificate verification: ``"never"`` or ``"always"``.
    tls_verify: str = "never"
    #: CA certificate file for verifying the server.
    tls_ca_certfile: str | None = None
    #: Identifier prefixed to every diagnostic line.
    tester_id: int = field(default_factory=os.getpid)

    def __post_init__(self) -> None:  # noqa: PLR0912
        if not self.uri:
            msg = "A server URI is required"
            raise ImproperlyConfigured(msg)
        if not self.base:
            msg = "A search base is required"
            raise ImproperlyConfigured(msg)
        if self.filterstr is None:
            msg = "A search filter is required"
            raise ImproperlyConfigured(msg)
        if self.filterstr == "":
            msg = "invalid EMPTY search filter"
            raise ImproperlyConfigured(msg)
        if self.attribute is not None and not self.attribute.strip():
            msg = "The randomized search attribute may not be empty"
            raise ImproperlyConfigured(msg)
        for name in ("loops", "outer_loops", "retries", "delay", "force"):
            if getattr(self, name) < 0:
                msg = f"{name} must not be negative: {getattr(self, name)}"
                raise ImproperlyConfigured(msg)
        if self.timeout is not None and self.timeout <= 0:
            msg = f"timeout must be positive: {self.timeout}"
            raise ImproperlyConfigured(msg)
        if self.tls_verify not in TLS_VERIFY_CHOICES:
            msg = f"Invalid tls_verify value: {self.tls_verify}"
            raise ImproperlyConfigured(msg)
        if self.tls_ca_certfile:
            ca_certfile = Path(self.tls_ca_certfile)
            if not ca_certfile.exists():
                msg = f"CA Certificate file does not exist: {self.tls_ca_certfile}"
                raise ImproperlyConfigured(msg)
            if not ca_certfile.is_file():
                msg = f"CA Certificate file is not a file: {self.tls_ca_certfile}"
                raise ImproperlyConfigured(msg)
        # Fail on a bad ignore list now rather than at the first search error
        parse_codes(self.ignore)

    @property
    def ignore_codes(self) -> set[int] | None:
        """
        The ignored result codes, or ``None`` if every code is ignored.
        """
        return parse_codes(self.ignore)

    @property
    def randomized(self) -> bool:
        """``True`` if this run does randomized-filter searches."""
        return self.attribute is not None
