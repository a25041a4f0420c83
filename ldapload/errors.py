"""
LDAP result codes and error classification.

This module provides the table of LDAP result code names, helpers for pulling
the result code and the server diagnostics out of a python-ldap exception, and
the :py:class:`IgnoreList` used to tolerate expected search errors.
"""

from collections import Counter
from typing import Any

from .exceptions import ImproperlyConfigured

#: LDAP result codes by name.  The names are the ones used by OpenLDAP's
#: ``ldap.h`` (without the ``LDAP_`` prefix), which are also the names of the
#: corresponding python-ldap exception classes.
RESULT_CODES: dict[str, int] = {
    "SUCCESS": 0,
    "OPERATIONS_ERROR": 1,
    "PROTOCOL_ERROR": 2,
    "TIMELIMIT_EXCEEDED": 3,
    "SIZELIMIT_EXCEEDED": 4,
    "COMPARE_FALSE": 5,
    "COMPARE_TRUE": 6,
    "AUTH_METHOD_NOT_SUPPORTED": 7,
    "STRONG_AUTH_REQUIRED": 8,
    "PARTIAL_RESULTS": 9,
    "REFERRAL": 10,
    "ADMINLIMIT_EXCEEDED": 11,
    "UNAVAILABLE_CRITICAL_EXTENSION": 12,
    "CONFIDENTIALITY_REQUIRED": 13,
    "SASL_BIND_IN_PROGRESS": 14,
    "NO_SUCH_ATTRIBUTE": 16,
    "UNDEFINED_TYPE": 17,
    "INAPPROPRIATE_MATCHING": 18,
    "CONSTRAINT_VIOLATION": 19,
    "TYPE_OR_VALUE_EXISTS": 20,
    "INVALID_SYNTAX": 21,
    "NO_SUCH_OBJECT": 32,
    "ALIAS_PROBLEM": 33,
    "INVALID_DN_SYNTAX": 34,
    "IS_LEAF": 35,
    "ALIAS_DEREF_PROBLEM": 36,
    "INAPPROPRIATE_AUTH": 48,
    "INVALID_CREDENTIALS": 49,
    "INSUFFICIENT_ACCESS": 50,
    "BUSY": 51,
    "UNAVAILABLE": 52,
    "UNWILLING_TO_PERFORM": 53,
    "LOOP_DETECT": 54,
    "NAMING_VIOLATION": 64,
    "OBJECT_CLASS_VIOLATION": 65,
    "NOT_ALLOWED_ON_NONLEAF": 66,
    "NOT_ALLOWED_ON_RDN": 67,
    "ALREADY_EXISTS": 68,
    "NO_OBJECT_CLASS_MODS": 69,
    "RESULTS_TOO_LARGE": 70,
    "AFFECTS_MULTIPLE_DSAS": 71,
    "VLV_ERROR": 76,
    "OTHER": 80,
    "SERVER_DOWN": -1,
    "LOCAL_ERROR": -2,
    "ENCODING_ERROR": -3,
    "DECODING_ERROR": -4,
    "TIMEOUT": -5,
    "AUTH_UNKNOWN": -6,
    "FILTER_ERROR": -7,
    "USER_CANCELLED": -8,
    "PARAM_ERROR": -9,
    "NO_MEMORY": -10,
    "CONNECT_ERROR": -11,
    "NOT_SUPPORTED": -12,
    "CONTROL_NOT_FOUND": -13,
    "NO_RESULTS_RETURNED": -14,
    "MORE_RESULTS_TO_RETURN": -15,
    "CLIENT_LOOP": -16,
    "REFERRAL_LIMIT_EXCEEDED": -17,
}

SUCCESS = RESULT_CODES["SUCCESS"]
SIZELIMIT_EXCEEDED = RESULT_CODES["SIZELIMIT_EXCEEDED"]
TIMELIMIT_EXCEEDED = RESULT_CODES["TIMELIMIT_EXCEEDED"]
BUSY = RESULT_CODES["BUSY"]
UNAVAILABLE = RESULT_CODES["UNAVAILABLE"]
OTHER = RESULT_CODES["OTHER"]

#: Bind failures that are worth retrying.
TRANSIENT_BIND_CODES = frozenset({BUSY, UNAVAILABLE})

#: What we tolerate on searches unless told otherwise.
DEFAULT_IGNORE = "REFERRAL,NO_SUCH_OBJECT"

_CODE_NAMES: dict[int, str] = {code: name for name, code in RESULT_CODES.items()}


def code_name(code: int) -> str:
    """
    Return the symbolic name for ``code``, or ``"UNKNOWN"``.
    """
    return _CODE_NAMES.get(code, "UNKNOWN")


def _error_info(exc: Exception) -> dict[str, Any]:
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return {}


def result_code(exc: Exception) -> int:
    """
    Extract the LDAP result code from a python-ldap exception.

    python-ldap puts the server's response in a dict as the first exception
    argument; the ``result`` key holds the code.  Exceptions raised without
    that dict fall back to the ``errnum`` attribute python-ldap sets on its
    exception classes.

    Args:
        exc: the exception raised by python-ldap

    Returns:
        The numeric result code, or ``OTHER`` if none can be determined.

    """
    code = _error_info(exc).get("result")
    if code is None:
        code = getattr(exc, "errnum", None)
    if code is None:
        return OTHER
    return int(code)


def describe(exc: Exception) -> str:
    """
    Build a one line diagnostic from a python-ldap exception.

    The result is of the form ``<desc> (<code>)`` followed by whatever
    ``info``, ``matched`` DN and referrals the server sent back.
    """
    info = _error_info(exc)
    code = result_code(exc)
    desc = info.get("desc") or code_name(code)
    parts = [f"{desc} ({code})"]
    if text := info.get("info"):
        parts.append(f'text="{str(text).strip()}"')
    if matched := info.get("matched"):
        parts.append(f'matched="{matched}"')
    referrals = info.get("referrals") or info.get("refs")
    if referrals:
        parts.append("referrals=" + ",".join(f'"{ref}"' for ref in referrals))
    return " ".join(parts)


def parse_codes(text: str) -> set[int] | None:
    """
    Parse a comma separated list of result codes.

    Entries may be result code names (``NO_SUCH_OBJECT``, optionally with an
    ``LDAP_`` prefix, any case) or integers.  The single entry ``*`` means
    "every code", for which we return ``None``.

    Args:
        text: the comma separated list

    Raises:
        ImproperlyConfigured: an entry is neither a known name nor an integer

    Returns:
        The set of codes, or ``None`` for ``*``.

    """
    codes: set[int] = set()
    for raw in text.split(","):
        entry = raw.strip()
        if not entry:
            continue
        if entry == "*":
            return None
        name = entry.upper()
        name = name.removeprefix("LDAP_")
        if name in RESULT_CODES:
            codes.add(RESULT_CODES[name])
            continue
        try:
            codes.add(int(entry, 0))
        except ValueError:
            msg = f"Unknown LDAP result code in ignore list: {entry}"
            raise ImproperlyConfigured(msg) from None
    return codes


class IgnoreList:
    """
    The set of search result codes we treat as expected.

    Besides membership, this keeps a count of how many times each ignored
    code has been seen so that repeated occurrences of the same expected
    error don't flood the diagnostics.

    Keyword Args:
        codes: the initial set of codes to ignore
        ignore_all: if ``True``, every non-success code is ignored

    """

    def __init__(
        self, codes: set[int] | None = None, *, ignore_all: bool = False
    ) -> None:
        self.codes: set[int] = set(codes or ())
        self.ignore_all = ignore_all
        self.seen: Counter[int] = Counter()

    @classmethod
    def from_string(cls, text: str = DEFAULT_IGNORE) -> "IgnoreList":
        """
        Build an :py:class:`IgnoreList` from a comma separated list of codes.
        """
        ignore = cls()
        ignore.extend(text)
        return ignore

    def extend(self, text: str) -> None:
        """
        Add the codes in the comma separated list ``text``.
        """
        codes = parse_codes(text)
        if codes is None:
            self.ignore_all = True
        else:
            self.codes |= codes

    def __contains__(self, code: int) -> bool:
        if code == SUCCESS:
            return False
        return self.ignore_all or code in self.codes

    def __repr__(self) -> str:
        if self.ignore_all:
            return "IgnoreList(*)"
        names = ",".join(code_name(code) for code in sorted(self.codes))
        return f"IgnoreList({names})"

    def check(self, code: int) -> int:
        """
        Record an occurrence of ``code``.

        Returns:
            0 if ``code`` is not ignored, otherwise how many times ``code`` has
            been seen so far, including this time.

        """
        if code not in self:
            return 0
        self.seen[code] += 1
        return self.seen[code]

    def should_log(self, occurrence: int, force: int = 0) -> bool:
        """
        Decide whether an ignored error should be logged.

        The first occurrence of an ignored code is always logged.  Repeats are
        only logged when ``force`` is at least 1.

        Args:
            occurrence: the value returned by :py:meth:`check`

        Keyword Args:
            force: the force level (number of ``-F`` options)

        """
        return occurrence == 1 or force >= 1
