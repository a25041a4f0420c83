"""
The search driver.

:py:class:`SearchDriver` binds to the server and runs searches in a loop,
retrying when the server reports that it is busy or unavailable, tolerating
the result codes in the ignore list, and reporting everything else.  It can
also pick values of an attribute at random from an initial search and search
for each of them in turn.

Everything here is synchronous: each python-ldap call blocks until the server
answers.
"""

import logging
import random
import time
from collections import namedtuple
from collections.abc import Callable

from ldap_filter import Filter

from ldapload import ldap

from .connection import ConnectionFactory
from .errors import (
    BUSY,
    SIZELIMIT_EXCEEDED,
    SUCCESS,
    TIMELIMIT_EXCEEDED,
    TRANSIENT_BIND_CODES,
    IgnoreList,
    describe,
    result_code,
)
from .exceptions import BindFailed, NoValuesFound
from .options import SEARCH_ATTRIBUTES, SearchOptions
from .typing import LDAPResult

logger = logging.getLogger(__name__)

#: What one search operation did.  ``code`` is the last result code seen,
#: ``searches`` the number of search requests sent, and ``retries`` the part
#: of the retry budget that was used up.
SearchResult = namedtuple("SearchResult", ["code", "searches", "retries"])

#: Result codes that still deliver the entries found so far.
PARTIAL_RESULT_CODES = frozenset({SIZELIMIT_EXCEEDED, TIMELIMIT_EXCEEDED})


def build_filter(attribute: str, value: str) -> str:
    """
    Build an equality filter ``(attribute=value)``, escaping ``value`` as
    needed.
    """
    return Filter.attribute(attribute).equal_to(value).to_string()


def _as_text(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class SearchDriver:
    """
    Run bind and search operations against one LDAP server.

    The driver owns at most one connection at a time.  A connection is opened
    lazily, kept between the searches of a randomized run, and replaced when a
    retry needs a fresh one.

    Args:
        options: the parameters of this run

    Keyword Args:
        factory: builds our connections; defaults to a
            :py:class:`~ldapload.connection.ConnectionFactory` for ``options``
        sleep: called with :py:attr:`SearchOptions.delay` before each retry
        rng: source of randomness for the randomized searches

    """

    def __init__(
        self,
        options: SearchOptions,
        factory: ConnectionFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.options = options
        self.factory = factory or ConnectionFactory(options)
        self.sleep = sleep
        self.rng = rng or random.Random()  # noqa: S311
        codes = options.ignore_codes
        self.ignore = IgnoreList(codes or set(), ignore_all=codes is None)
        self._ldap_object: ldap.ldapobject.LDAPObject | None = None  # type: ignore[name-defined]

    # -----------------------
    # Connection management
    # -----------------------

    def has_connection(self) -> bool:
        """
        Return ``True`` if we currently hold an open connection.
        """
        return self._ldap_object is not None

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        The current connection.

        Raises:
            RuntimeError: there is no open connection

        """
        if self._ldap_object is None:
            msg = "SearchDriver has no open connection"
            raise RuntimeError(msg)
        return self._ldap_object

    def set_connection(self, obj: ldap.ldapobject.LDAPObject) -> None:  # type: ignore[name-defined]
        """
        Make ``obj`` our connection, closing whatever connection we held before.
        """
        if self._ldap_object is not None and self._ldap_object is not obj:
            self.disconnect()
        self._ldap_object = obj

    def remove_connection(self) -> None:
        """
        Forget our connection without unbinding it.
        """
        self._ldap_object = None

    def disconnect(self) -> None:
        """
        Unbind and forget our connection, if we have one.
        """
        if self._ldap_object is not None:
            self.factory.close(self._ldap_object)
            self.remove_connection()

    def _pause(self) -> None:
        if self.options.delay:
            self.sleep(self.options.delay)

    def connect(self, retries_left: int) -> int:
        """
        Open a connection and bind, retrying while the server is busy or
        unavailable.

        Each retry closes the failed connection, uses up one unit of
        ``retries_left`` and waits :py:attr:`SearchOptions.delay` seconds.

        Args:
            retries_left: how much of the retry budget is left

        Raises:
            BindFailed: StartTLS or the bind failed for a reason other than the
                server being busy or unavailable, or we ran out of retries
            FatalSearchError: the connection object could not be created

        Returns:
            How much of the retry budget is left after connecting.

        """
        options = self.options
        while True:
            try:
                # StartTLS happens in open(), so its failures are bind failures
                self.set_connection(self.factory.open())
                self.factory.bind(self.connection)
            except ldap.LDAPError as e:  # type: ignore[attr-defined]
                code = result_code(e)
                logger.error(
                    'PID=%s - ldap_bind(%s): %s bindDN="%s"',
                    options.tester_id,
                    code,
                    describe(e),
                    options.binddn,
                )
                self.disconnect()
                if code in TRANSIENT_BIND_CODES and retries_left > 0:
                    retries_left -= 1
                    logger.debug(
                        "PID=%s - ldapload.bind.retry retries_left=%d",
                        options.tester_id,
                        retries_left,
                    )
                    self._pause()
                    continue
                msg = f"bind as {options.binddn} failed: {describe(e)}"
                raise BindFailed(msg, code=code) from e
            return retries_left

    # -----------------------
    # Searching
    # -----------------------

    def _search_once(self, filterstr: str) -> None:
        """
        Send one search request and wait for all of its results, which we
        throw away.

        Raises:
            ldap.LDAPError: the search failed

        """
        msgid = self.connection.search_ext(
            self.options.base,
            ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
            filterstr,
            list(SEARCH_ATTRIBUTES),
            int(self.options.no_attrs),
        )
        self.connection.result3(msgid)

    def _fetch_entries(
        self, filterstr: str, attrlist: list[str]
    ) -> tuple[LDAPResult, int]:
        """
        Search and collect the entries one at a time, so that a size or time
        limit still leaves us with the entries we received before it hit.

        Raises:
            ldap.LDAPError: the search failed for another reason

        Returns:
            The list of ``(dn, attrs)`` entries and the result code.

        """
        msgid = self.connection.search_ext(
            self.options.base,
            ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
            filterstr,
            attrlist,
            0,
        )
        results: LDAPResult = []
        while True:
            try:
                rtype, rdata, _, _ = self.connection.result3(msgid, all=0)
            except ldap.LDAPError as e:  # type: ignore[attr-defined]
                code = result_code(e)
                if code in PARTIAL_RESULT_CODES:
                    return results, code
                raise
            for dn, attrs in rdata or []:
                # Search references come back as (None, [urls]); skip them
                if isinstance(attrs, dict):
                    results.append((dn, attrs))
            if rtype == ldap.RES_SEARCH_RESULT:  # type: ignore[attr-defined]
                return results, SUCCESS

    def search(
        self,
        filterstr: str | None = None,
        loops: int | None = None,
        *,
        keep_connection: bool = False,
    ) -> SearchResult:
        """
        Run the same search ``loops`` times.

        If we have no connection yet, one is opened and bound first.  Errors
        whose codes are in the ignore list are logged (only the first time,
        unless :py:attr:`SearchOptions.force` is set) and the loop goes on.  A
        busy server makes us reconnect and carry on with the remaining
        searches while the retry budget lasts.  Any other error is logged and
        ends the loop.

        Keyword Args:
            filterstr: the filter; defaults to :py:attr:`SearchOptions.filterstr`
            loops: how many searches to run; defaults to
                :py:attr:`SearchOptions.loops`
            keep_connection: if ``True``, leave the connection open on the
                driver for the next call instead of closing it and logging the
                summary line

        Raises:
            BindFailed: we could not bind
            FatalSearchError: the connection object could not be created

        Returns:
            A :py:data:`SearchResult`.

        """
        options = self.options
        if filterstr is None:
            filterstr = options.filterstr
        if loops is None:
            loops = options.loops
        retries_left = options.retries
        code = SUCCESS
        sent = 0
        done = 0
        if not self.has_connection():
            logger.info(
                'PID=%s - Search(%d): base="%s", filter="%s".',
                options.tester_id,
                loops,
                options.base,
                filterstr,
            )
        while True:
            if not self.has_connection():
                retries_left = self.connect(retries_left)
            reconnect = False
            while done < loops:
                sent += 1
                try:
                    self._search_once(filterstr)
                except ldap.LDAPError as e:  # type: ignore[attr-defined]
                    code = result_code(e)
                    occurrence = self.ignore.check(code)
                    if occurrence:
                        if self.ignore.should_log(occurrence, options.force):
                            logger.warning(
                                "PID=%s - ldap_search_ext(%s): %s",
                                options.tester_id,
                                code,
                                describe(e),
                            )
                        done += 1
                        continue
                    logger.error(
                        'PID=%s - ldap_search_ext(%s): %s base="%s" filter="%s"',
                        options.tester_id,
                        code,
                        describe(e),
                        options.base,
                        filterstr,
                    )
                    if code == BUSY and retries_left > 0:
                        self.disconnect()
                        retries_left -= 1
                        self._pause()
                        reconnect = True
                    break
                code = SUCCESS
                done += 1
            if not reconnect:
                break
        if not keep_connection:
            logger.info("PID=%s - Search done (%d).", options.tester_id, code)
            self.disconnect()
        return SearchResult(code, sent, options.retries - retries_left)

    def collect_values(self, entries: LDAPResult, attribute: str) -> list[str]:
        """
        Return every value of ``attribute`` across ``entries``, in order.

        Attribute names are matched case-insensitively, as LDAP does.
        """
        wanted = attribute.lower()
        values: list[str] = []
        for _, attrs in entries:
            for name, attr_values in attrs.items():
                if name.lower() == wanted:
                    values.extend(_as_text(value) for value in attr_values)
        return values

    def random_search(self) -> SearchResult:
        """
        Search for the values of :py:attr:`SearchOptions.attribute`, then run
        :py:attr:`SearchOptions.loops` searches each filtered on one of those
        values, chosen at random.

        All of the follow-up searches share one connection.

        Raises:
            NoValuesFound: the initial search produced no values
            BindFailed: we could not bind
            FatalSearchError: the connection object could not be created

        Returns:
            A :py:data:`SearchResult` whose ``code`` is that of the initial
            search.

        """
        options = self.options
        attribute = options.attribute
        if attribute is None:
            msg = "random_search() needs SearchOptions.attribute"
            raise ValueError(msg)
        self.disconnect()
        logger.info(
            'PID=%s - Search(%d): base="%s", filter="%s" attr="%s".',
            options.tester_id,
            options.loops,
            options.base,
            options.filterstr,
            attribute,
        )
        retries_left = self.connect(options.retries)
        sent = 1
        try:
            try:
                entries, code = self._fetch_entries(options.filterstr, [attribute])
            except ldap.LDAPError as e:  # type: ignore[attr-defined]
                code = result_code(e)
                logger.error(
                    'PID=%s - ldap_search_ext(%s): %s base="%s" filter="%s"',
                    options.tester_id,
                    code,
                    describe(e),
                    options.base,
                    options.filterstr,
                )
            else:
                values = self.collect_values(entries, attribute)
                if not values:
                    logger.error(
                        'PID=%s - Search base="%s" filter="%s" got %d values.',
                        options.tester_id,
                        options.base,
                        options.filterstr,
                        0,
                    )
                    msg = (
                        f'search base="{options.base}" filter="{options.filterstr}" '
                        f"returned no values for {attribute}"
                    )
                    raise NoValuesFound(msg, code=code)
                logger.info(
                    'PID=%s - Search base="%s" filter="%s" got %d values.',
                    options.tester_id,
                    options.base,
                    options.filterstr,
                    len(values),
                )
                for _ in range(options.loops):
                    value = values[self.rng.randrange(len(values))]
                    result = self.search(
                        build_filter(attribute, value), loops=1, keep_connection=True
                    )
                    sent += result.searches
            logger.info("PID=%s - Search done (%d).", options.tester_id, code)
        finally:
            self.disconnect()
        return SearchResult(code, sent, options.retries - retries_left)

    def run(self) -> list[SearchResult]:
        """
        Run :py:attr:`SearchOptions.outer_loops` operations one after the other:
        randomized searches if :py:attr:`SearchOptions.attribute` is set,
        fixed-filter searches otherwise.

        Raises:
            FatalSearchError: an operation could not be completed

        Returns:
            The :py:data:`SearchResult` of each operation.

        """
        results: list[SearchResult] = []
        for _ in range(self.options.outer_loops):
            if self.options.randomized:
                results.append(self.random_search())
            else:
                results.append(self.search())
        return results
