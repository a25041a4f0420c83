import dataclasses
import tempfile
import unittest
from pathlib import Path

from ldapload.exceptions import ImproperlyConfigured
from ldapload.options import DEFAULT_LOOPS, SearchOptions, build_uri


class TestBuildUri(unittest.TestCase):

    def test_uri_wins(self):
        self.assertEqual(
            build_uri("ldaps://ldap.example.com", "other", 389),
            "ldaps://ldap.example.com",
        )

    def test_host_and_port(self):
        self.assertEqual(build_uri(None, "ldap.example.com", 1389), "ldap://ldap.example.com:1389")

    def test_port_only(self):
        self.assertEqual(build_uri(None, None, 389), "ldap://localhost:389")

    def test_no_uri_and_no_port(self):
        with self.assertRaises(ImproperlyConfigured):
            build_uri(None, "ldap.example.com", None)


class TestSearchOptions(unittest.TestCase):

    def make(self, **kwargs) -> SearchOptions:
        params = {
            "uri": "ldap://localhost:389",
            "base": "dc=example,dc=com",
            "filterstr": "(objectClass=*)",
        }
        params.update(kwargs)
        return SearchOptions(**params)

    def test_defaults(self):
        options = self.make()
        self.assertEqual(options.loops, DEFAULT_LOOPS)
        self.assertEqual(options.outer_loops, 1)
        self.assertEqual(options.retries, 0)
        self.assertEqual(options.ignore_codes, {10, 32})
        self.assertFalse(options.randomized)
        self.assertIsInstance(options.tester_id, int)

    def test_randomized(self):
        self.assertTrue(self.make(attribute="uid").randomized)

    def test_password_not_in_repr(self):
        self.assertNotIn("s3cret", repr(self.make(password="s3cret")))

    def test_frozen(self):
        options = self.make()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            options.loops = 5  # type: ignore[misc]

    def test_required(self):
        for name in ("uri", "base"):
            with self.subTest(name=name), self.assertRaises(ImproperlyConfigured):
                self.make(**{name: ""})
        with self.assertRaises(ImproperlyConfigured):
            self.make(filterstr=None)

    def test_empty_filter(self):
        with self.assertRaisesRegex(ImproperlyConfigured, "invalid EMPTY search filter"):
            self.make(filterstr="")

    def test_blank_attribute(self):
        with self.assertRaises(ImproperlyConfigured):
            self.make(attribute="  ")

    def test_negative_counts(self):
        for name in ("loops", "outer_loops", "retries", "delay", "force"):
            with self.subTest(name=name), self.assertRaises(ImproperlyConfigured):
                self.make(**{name: -1})

    def test_zero_counts_are_allowed(self):
        options = self.make(loops=0, outer_loops=0)
        self.assertEqual(options.loops, 0)

    def test_timeout(self):
        self.assertEqual(self.make(timeout=2.5).timeout, 2.5)
        with self.assertRaises(ImproperlyConfigured):
            self.make(timeout=0)

    def test_tls_verify(self):
        self.assertEqual(self.make(tls_verify="always").tls_verify, "always")
        with self.assertRaises(ImproperlyConfigured):
            self.make(tls_verify="sometimes")

    def test_ca_certfile(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            ca = Path(tmpdir) / "ca.pem"
            ca.write_text("not really a certificate")
            self.assertEqual(self.make(tls_ca_certfile=str(ca)).tls_ca_certfile, str(ca))
            with self.assertRaisesRegex(ImproperlyConfigured, "is not a file"):
                self.make(tls_ca_certfile=tmpdir)
            with self.assertRaisesRegex(ImproperlyConfigured, "does not exist"):
                self.make(tls_ca_certfile=str(Path(tmpdir) / "missing.pem"))

    def test_bad_ignore_list(self):
        with self.assertRaises(ImproperlyConfigured):
            self.make(ignore="REFERRAL,BOGUS")

    def test_ignore_everything(self):
        self.assertIsNone(self.make(ignore="*").ignore_codes)
