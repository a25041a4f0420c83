import logging
import unittest

import structlog

from ldapload.log import logging_config, pre_chain


class TestLogging(unittest.TestCase):

    def test_logging_config(self):
        config = logging_config(logging.DEBUG)
        self.assertEqual(config["loggers"]["ldapload"]["level"], "DEBUG")
        self.assertFalse(config["loggers"]["ldapload"]["propagate"])
        self.assertEqual(config["handlers"]["structlog_console"]["stream"], "ext://sys.stderr")
        self.assertIs(config["formatters"]["structlog"]["()"], structlog.stdlib.ProcessorFormatter)
        self.assertIs(config["formatters"]["structlog"]["foreign_pre_chain"], pre_chain)

    def test_default_level(self):
        self.assertEqual(logging_config()["loggers"]["ldapload"]["level"], "INFO")
