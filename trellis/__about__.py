# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis package metadata."""

__title__ = "trellis"
__version__ = "1.0.0"
__author__ = "HashiCorp Security (https://www.hashicorp.com/security)"
__license__ = "Mozilla Public License 2.0"
__copyright__ = "HashiCorp, Inc."
