"""
Command line interface: ``ldapload-search``.

Usage::

    ldapload-search -H <uri> | ([-h <host>] -p <port>) -D <manager> -w <passwd>
        -b <searchbase> -f <searchfilter> [-a <attr>] [-A] [-C] [-F] [-N]
        [-i <ignore>] [-l <loops>] [-L <outerloops>] [-r <maxretries>]
        [-t <delay>]

The exit status is 0 when every requested loop ran, and 1 when the run could
not start or had to be abandoned (bad arguments, a failed bind, no values for
a randomized run).
"""

import argparse
import logging
import os
import sys
from collections.abc import Sequence

from .driver import SearchDriver
from .errors import DEFAULT_IGNORE
from .exceptions import FatalSearchError, ImproperlyConfigured
from .log import setup_logging
from .options import (
    DEFAULT_HOST,
    DEFAULT_LOOPS,
    DEFAULT_OUTER_LOOPS,
    DEFAULT_RETRIES,
    TLS_VERIFY_CHOICES,
    SearchOptions,
    build_uri,
)

logger = logging.getLogger(__name__)

#: Environment variable holding the bind password when ``-w`` is not given.
PASSWORD_ENV = "LDAPLOAD_PASSWORD"

DESC = """
Load generator for LDAP servers: bind, then run the same subtree search over
and over, reporting errors on stderr.  With -a, first collect the values of
one attribute and then search for randomly chosen values of it.
"""


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser.  ``-h`` is the server host, so help is only
    available as ``--help``.
    """
    parser = argparse.ArgumentParser(
        prog="ldapload-search", description=DESC, add_help=False
    )
    parser.add_argument("--help", action="help", help="Show this help and exit")
    parser.add_argument("-H", dest="uri", help="LDAP Uniform Resource Identifier")
    parser.add_argument(
        "-h", dest="host", default=DEFAULT_HOST, help="LDAP server host"
    )
    parser.add_argument("-p", dest="port", type=int, help="LDAP server port")
    parser.add_argument("-D", dest="binddn", help="Bind DN")
    parser.add_argument(
        "-w",
        dest="password",
        help=f"Bind password (default: ${PASSWORD_ENV})",
    )
    parser.add_argument("-b", dest="base", required=True, help="Search base DN")
    parser.add_argument(
        "-f", dest="filterstr", required=True, help="Search filter"
    )
    parser.add_argument(
        "-a",
        dest="attribute",
        help="Search for random values of this attribute",
    )
    parser.add_argument(
        "-A",
        dest="no_attrs",
        action="store_true",
        help="Retrieve attribute types only, no values",
    )
    parser.add_argument(
        "-C", dest="chase_referrals", action="store_true", help="Chase referrals"
    )
    parser.add_argument(
        "-F",
        dest="force",
        action="count",
        default=0,
        help=(
            "Log every occurrence of ignored errors; without -F only the first "
            "occurrence of each result code is logged"
        ),
    )
    parser.add_argument(
        "-N", dest="anonymous", action="store_true", help="Do not bind"
    )
    parser.add_argument(
        "-i",
        dest="ignore",
        action="append",
        default=[],
        help=(
            "Comma separated result codes to ignore, in addition to "
            f"{DEFAULT_IGNORE}; may be repeated"
        ),
    )
    parser.add_argument(
        "-l",
        dest="loops",
        type=int,
        default=DEFAULT_LOOPS,
        help=f"Number of searches per operation (default: {DEFAULT_LOOPS})",
    )
    parser.add_argument(
        "-L",
        dest="outer_loops",
        type=int,
        default=DEFAULT_OUTER_LOOPS,
        help=f"Number of operations (default: {DEFAULT_OUTER_LOOPS})",
    )
    parser.add_argument(
        "-r",
        dest="retries",
        type=int,
        default=DEFAULT_RETRIES,
        help=f"Retries on busy/unavailable (default: {DEFAULT_RETRIES})",
    )
    parser.add_argument(
        "-t", dest="delay", type=int, default=0, help="Delay between retries, seconds"
    )
    parser.add_argument(
        "-Z", dest="use_starttls", action="store_true", help="Issue StartTLS"
    )
    parser.add_argument(
        "--tls-verify",
        choices=TLS_VERIFY_CHOICES,
        default="never",
        help="Verify the server certificate (default: never)",
    )
    parser.add_argument(
        "--tls-cacert", dest="tls_ca_certfile", help="CA certificate file"
    )
    parser.add_argument(
        "--timeout", type=float, help="Network timeout in seconds"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Verbose mode"
    )
    return parser


def options_from_args(args: argparse.Namespace) -> SearchOptions:
    """
    Turn parsed arguments into a validated :py:class:`SearchOptions`.

    Raises:
        ImproperlyConfigured: the arguments don't make a usable run

    """
    password = args.password
    if password is None:
        password = os.environ.get(PASSWORD_ENV)
    return SearchOptions(
        uri=build_uri(args.uri, args.host, args.port),
        base=args.base,
        filterstr=args.filterstr,
        binddn=args.binddn,
        password=password,
        attribute=args.attribute,
        loops=args.loops,
        outer_loops=args.outer_loops,
        retries=args.retries,
        delay=args.delay,
        chase_referrals=args.chase_referrals,
        force=args.force,
        no_attrs=args.no_attrs,
        anonymous=args.anonymous,
        ignore=",".join([DEFAULT_IGNORE, *args.ignore]),
        timeout=args.timeout,
        use_starttls=args.use_starttls,
        tls_verify=args.tls_verify,
        tls_ca_certfile=args.tls_ca_certfile,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run the search tester.

    Keyword Args:
        argv: the arguments, without the program name; defaults to
            ``sys.argv[1:]``

    Returns:
        The process exit status.

    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        options = options_from_args(args)
    except ImproperlyConfigured as e:
        logger.error("%s: %s", parser.prog, e)
        return 1
    driver = SearchDriver(options)
    try:
        driver.run()
    except FatalSearchError as e:
        logger.error("PID=%s - %s", options.tester_id, e)
        return 1
    finally:
        driver.disconnect()
    return 0


if __name__ == "__main__":
    sys.exit(main())
