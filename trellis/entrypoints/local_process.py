# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis local process entrypoint.

A single page request document is read from stdin, and the page response document is
written to stdout.
"""

import json
import os
import socket
import sys
from typing import Dict

from trellis.entrypoints import base


def runtime_information() -> Dict[str, str]:
    """Attempts to determine the runtime, returning the relevant runtime data.

    :return: A dictionary of runtime data.
    """
    # If Nomad, grab the relevant information.
    if os.environ.get("NOMAD_ALLOC_ID", None):
        return {
            "runtime_id": os.environ.get("NOMAD_ALLOC_ID", "NOT_FOUND"),
            "runtime_region": os.environ.get("NOMAD_REGION", "NOT_FOUND"),
            "runtime_job_name": os.environ.get("NOMAD_JOB_NAME", "NOT_FOUND"),
        }

    return {
        "runtime_id": str(os.getpid()),
        "runtime_host": socket.gethostname(),
    }


def entrypoint():
    """Trellis local process entrypoint."""
    try:
        event = json.load(sys.stdin)
    except ValueError as err:
        sys.stderr.write(f"Page request is not valid JSON: {err}\n")
        sys.exit(1)

    response = base.get_page(
        event,
        context={"runtime": __file__, **runtime_information()},
    )

    json.dump(response, sys.stdout)
    sys.stdout.write("\n")


# Support local development if called as a script.
if __name__ == "__main__":
    entrypoint()
