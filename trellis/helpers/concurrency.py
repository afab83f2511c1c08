# Copyright (c) HashiCorp, Inc.
# SPDX-License-Identifier: MPL-2.0

"""Provides helpers for performing bounded concurrent requests."""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional, Sequence

from trellis.exceptions import InternalException
from trellis.helpers.http import request_timeout_message

logger = logging.getLogger(__name__)


def fan_out(
    fn: Callable[[Any], Any],
    items: Sequence[Any],
    max_concurrency: int,
    timeout: Optional[int] = None,
) -> List[Any]:
    """Calls the provided function for each item, with bounded concurrency.

    The first failure cancels all calls which have not yet started, and is raised to
    the caller without waiting for calls which are still running. The same applies
    when the timeout is reached. Results are returned in the same order as the
    provided items.

    :param fn: The function to call for each item.
    :param items: The items to call the function with.
    :param max_concurrency: The maximum number of concurrent calls.
    :param timeout: An optional number of seconds to wait for all calls to complete.

    :raises InternalException: Not all calls completed within the timeout.

    :return: The result of each call.
    """
    if not items:
        return []

    results: List[Any] = [None] * len(items)
    errors: List[BaseException] = []
    cancelled = threading.Event()
    lock = threading.Lock()

    def run(index: int, item: Any):
        # Siblings which have not yet started should not run once a call has failed.
        if cancelled.is_set():
            return

        try:
            results[index] = fn(item)
        except Exception as err:
            with lock:
                errors.append(err)

            cancelled.set()
            raise

    pool = ThreadPoolExecutor(max_workers=max_concurrency)
    futures = [pool.submit(run, index, item) for index, item in enumerate(items)]
    _, pending = wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)

    # Calls still running after a failure or timeout are abandoned rather than
    # joined, so the page fails within the timeout.
    if pending:
        cancelled.set()
        pool.shutdown(wait=False, cancel_futures=True)
    else:
        pool.shutdown(wait=True)

    if errors:
        raise errors[0]

    if pending:
        logger.error(
            "Concurrent requests did not complete before the request timeout",
            extra={"pending": len(pending), "timeout": timeout},
        )
        raise InternalException(
            f"Failed to complete all requests. {request_timeout_message(timeout)}"
        )

    return results
