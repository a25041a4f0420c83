"""
Type aliases for the python-ldap data structures ldapload deals with.
"""

LDAPData = tuple[str, dict[str, list[bytes]]]
LDAPResult = list[LDAPData]
