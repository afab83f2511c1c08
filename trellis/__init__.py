# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""A framework for serving paginated objects from SaaS and cloud APIs."""

from trellis import (
    adapters,  # noqa: F401
    constants,  # noqa: F401
    entrypoints,  # noqa: F401
    exceptions,  # noqa: F401
    helpers,  # noqa: F401
    logging,  # noqa: F401
    models,  # noqa: F401
    pagination,  # noqa: F401
    types,  # noqa: F401
)
from trellis.__about__ import *  # noqa: F401, F403
