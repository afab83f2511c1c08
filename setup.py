# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Minimal setup for trellis."""
import os

from setuptools import find_packages, setup

# These will be overwritten by the values from __about__.py
__version__ = "0.0.0"
__author__ = "Not Defined"

path = os.path.dirname(os.path.abspath(__file__))
exec(open(os.path.join(path, "trellis/__about__.py")).read())  # noqa: S102

# Load the long description for PyPi.
long_description = open(os.path.join(path, "README.md")).read()

setup(
    name="trellis-adapters",
    version=__version__,
    author=__author__,
    packages=find_packages(include=["trellis", "trellis.*"]),
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    install_requires=[
        "aws_lambda_powertools>=2.0,<3.0",
        "boto3",
        "botocore",
        "jmespath",
        "pydantic>=1.10,<2.0",
        "requests",
    ],
    extras_require={
        "tests": [
            "moto>=5.0",
            "pytest",
            "responses",
        ],
    },
    entry_points={
        "console_scripts": [
            "trellis = trellis.entrypoints.local_process:entrypoint",
        ],
        "trellis.entrypoints": [
            "aws_lambda = trellis.entrypoints.aws_lambda:entrypoint",
            "local_process = trellis.entrypoints.local_process:entrypoint",
        ],
        "trellis.adapters": [
            "aws = trellis.adapters.aws.adapter:Adapter",
            "aws_identitycenter = trellis.adapters.aws_identitycenter.adapter:Adapter",
            "pagerduty = trellis.adapters.pagerduty.adapter:Adapter",
            "servicenow = trellis.adapters.servicenow.adapter:Adapter",
        ],
    },
)
