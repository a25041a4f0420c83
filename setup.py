#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='ldapload',
    version='1.0.0',
    description='A bind and search load generator for LDAP servers',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['ldap', 'load testing'],
    author="Caltech IMSS ADS",
    author_email="imss-ads-staff@caltech.edu",
    packages=find_packages(exclude=['bin', 'ldapload.tests']),
    include_package_data=True,
    python_requires='>=3.10',
    install_requires=[
        'ldap_filter',
        'python-ldap',
        'structlog',
    ],
    extras_require={
        'test': [
            'python-ldap-faker',
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'ldapload-search = ldapload.cli:main',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3"
    ],
)
