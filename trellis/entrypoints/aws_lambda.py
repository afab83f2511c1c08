# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Trellis AWS Lambda entrypoint."""

from typing import Any, Dict

from aws_lambda_powertools.utilities.typing import LambdaContext

from trellis.entrypoints import base


def entrypoint(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    """Trellis AWS Lambda wrapper.

    :param event: The page request document.
    :param context: Execution context from AWS Lambda.

    :return: The page response document.
    """
    return base.get_page(
        event,
        context={
            "runtime": __file__,
            "runtime_id": context.aws_request_id,
            "lambda_function_arn": context.invoked_function_arn,
            "lambda_function_memory_size": context.memory_limit_in_mb,
            "lambda_request_id": context.aws_request_id,
        },
    )
