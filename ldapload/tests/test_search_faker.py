# mypy: disable-error-code="attr-defined"
"""
End to end tests for SearchDriver against a fake directory, using
python-ldap-faker.
"""

import random
import unittest
from unittest.mock import patch

from ldap_faker.unittest import LDAPFakerMixin

from ldapload.driver import SearchDriver, build_filter
from ldapload.exceptions import BindFailed, NoValuesFound
from ldapload.options import SearchOptions


class TestSearchDriverWithFaker(LDAPFakerMixin, unittest.TestCase):
    """Run the driver against python-ldap-faker's in-memory server."""

    ldap_modules = ['ldapload']

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.test_objects = [
            [
                "cn=admin,dc=example,dc=com",
                {
                    "cn": [b"admin"],
                    "userPassword": [b"admin"],
                    "objectclass": [b"simpleSecurityObject", b"organizationalRole", b"top"]
                }
            ],
            [
                "ou=users,dc=example,dc=com",
                {
                    "ou": [b"users"],
                    "objectclass": [b"organizationalUnit", b"top"]
                }
            ],
            [
                "uid=alice,ou=users,dc=example,dc=com",
                {
                    "uid": [b"alice"],
                    "cn": [b"Alice Johnson"],
                    "sn": [b"Johnson"],
                    "userPassword": [b"password"],
                    "objectclass": [b"posixAccount", b"top"]
                }
            ],
            [
                "uid=bob,ou=users,dc=example,dc=com",
                {
                    "uid": [b"bob"],
                    "cn": [b"Bob Smith"],
                    "sn": [b"Smith"],
                    "userPassword": [b"password"],
                    "objectclass": [b"posixAccount", b"top"]
                }
            ],
            [
                "uid=charlie,ou=users,dc=example,dc=com",
                {
                    "uid": [b"charlie"],
                    "cn": [b"Charlie Brown"],
                    "sn": [b"Brown"],
                    "userPassword": [b"password"],
                    "objectclass": [b"posixAccount", b"top"]
                }
            ],
        ]

    def setUp(self):
        super().setUp()
        if not hasattr(self, 'ldap_faker'):
            LDAPFakerMixin.setUp(self)

        # Clear the fake LDAP directory before each test
        self.server_factory.default.raw_objects.clear()  # type: ignore[attr-defined]
        self.server_factory.default.objects.clear()  # type: ignore[attr-defined]
        for dn, attrs in self.test_objects:
            self.server_factory.default.register_object((dn, attrs))  # type: ignore[attr-defined]

    def make_driver(self, **kwargs) -> SearchDriver:
        params = {
            "uri": "ldap://localhost:389",
            "base": "ou=users,dc=example,dc=com",
            "filterstr": "(objectclass=posixAccount)",
            "binddn": "cn=admin,dc=example,dc=com",
            "password": "admin",
            "loops": 10,
            "tester_id": 4321,
        }
        params.update(kwargs)
        return SearchDriver(SearchOptions(**params), rng=random.Random(7))

    def test_fixed_filter_run(self):
        driver = self.make_driver()
        with self.assertLogs("ldapload", level="INFO") as cm:
            results = driver.run()
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].code, 0)
        self.assertEqual(results[0].searches, 10)
        self.assertFalse(driver.has_connection())
        done = [line for line in cm.output if "Search done" in line]
        self.assertEqual(done, ["INFO:ldapload.driver:PID=4321 - Search done (0)."])

    def test_randomized_run(self):
        driver = self.make_driver(attribute="uid", loops=15)
        with patch("ldapload.driver.build_filter", wraps=build_filter) as spy:
            with self.assertLogs("ldapload", level="INFO") as cm:
                result = driver.random_search()
        self.assertEqual(result.code, 0)
        self.assertEqual(result.searches, 16)
        self.assertEqual(spy.call_count, 15)
        for args in spy.call_args_list:
            self.assertEqual(args[0][0], "uid")
            self.assertIn(args[0][1], {"alice", "bob", "charlie"})
        self.assertTrue(any("got 3 values" in line for line in cm.output))

    def test_randomized_run_without_matches(self):
        driver = self.make_driver(attribute="uid", filterstr="(uid=nobody)")
        with self.assertLogs("ldapload", level="INFO"):
            with self.assertRaises(NoValuesFound):
                driver.random_search()
        self.assertFalse(driver.has_connection())

    def test_wrong_password(self):
        driver = self.make_driver(password="wrong", retries=3)
        with self.assertLogs("ldapload", level="ERROR") as cm:
            with self.assertRaises(BindFailed) as exc:
                driver.run()
        self.assertEqual(exc.exception.code, 49)
        # Invalid credentials are not worth retrying
        self.assertEqual(len(cm.output), 1)

    def test_missing_base_is_ignored_by_default(self):
        driver = self.make_driver(base="ou=nowhere,dc=example,dc=com", loops=4)
        with self.assertLogs("ldapload", level="INFO") as cm:
            result = driver.search()
        self.assertEqual(result.searches, 4)
        self.assertEqual(result.code, 32)
        warnings = [line for line in cm.output if line.startswith("WARNING")]
        self.assertEqual(len(warnings), 1)
