"""
Opening, binding and closing LDAP connections.

All of the actual protocol work is done by python-ldap; this module only
configures the ``LDAPObject`` the way a search run asks for it.
"""

import logging

from ldapload import ldap

from .exceptions import FatalSearchError
from .options import SearchOptions

logger = logging.getLogger(__name__)


class ConnectionFactory:
    """
    Build python-ldap connections for a :py:class:`SearchOptions`.

    Args:
        options: the parameters of this search run

    """

    def __init__(self, options: SearchOptions) -> None:
        self.options = options

    def open(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Create a new, unbound LDAP connection object.

        This sets the protocol version to LDAPv3, turns referral chasing on or
        off and applies the timeout and TLS settings.  If StartTLS was asked
        for, it is negotiated here.

        Raises:
            FatalSearchError: python-ldap could not create the connection object
            ldap.LDAPError: StartTLS failed

        Returns:
            A configured, unbound LDAPObject.

        """
        options = self.options
        try:
            ldap_object: ldap.ldapobject.LDAPObject = ldap.initialize(options.uri)  # type: ignore[name-defined]
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            msg = f"ldap.initialize failed for {options.uri}: {e}"
            raise FatalSearchError(msg) from e
        ldap_object.set_option(ldap.OPT_PROTOCOL_VERSION, ldap.VERSION3)  # type: ignore[attr-defined]
        if options.chase_referrals:
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        if options.timeout is not None:
            ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(options.timeout))  # type: ignore[attr-defined]
        if options.uri.startswith("ldaps://") or options.use_starttls:
            if options.tls_verify == "always":
                ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
            else:
                ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
            if options.tls_ca_certfile:
                ldap_object.set_option(ldap.OPT_X_TLS_CACERTFILE, options.tls_ca_certfile)  # type: ignore[attr-defined]
            ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if options.use_starttls:
            try:
                ldap_object.start_tls_s()
            except ldap.LDAPError:  # type: ignore[attr-defined]
                self.close(ldap_object)
                raise
        logger.debug("ldapload.connection.open uri=%s", options.uri)
        return ldap_object

    def bind(self, ldap_object: ldap.ldapobject.LDAPObject) -> None:  # type: ignore[name-defined]
        """
        Authenticate ``ldap_object`` with a simple bind, unless this is an
        anonymous run.

        Raises:
            ldap.LDAPError: the server rejected the bind

        """
        if self.options.anonymous:
            return
        ldap_object.simple_bind_s(self.options.binddn, self.options.password)
        logger.debug("ldapload.connection.bind dn=%s", self.options.binddn)

    def close(self, ldap_object: ldap.ldapobject.LDAPObject) -> None:  # type: ignore[name-defined]
        """
        Unbind ``ldap_object``.  A connection the server already dropped is not
        an error here.
        """
        try:
            ldap_object.unbind_s()
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            logger.debug("ldapload.connection.close.failed error=%s", e)
