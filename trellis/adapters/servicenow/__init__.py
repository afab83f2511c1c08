# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""ServiceNow Table API adapter."""
