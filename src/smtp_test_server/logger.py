# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the SMTP test server.

The server never configures handlers, levels or formats: tests and
applications embedding it do that with ``logging.basicConfig()`` or
pytest's ``log_level`` options.

Example:
    Typical usage in a module::

        from smtp_test_server.logger import get_logger

        logger = get_logger("SmtpTestServer.connection")
        logger.debug("220 sent")
"""

import logging


def get_logger(name: str = "SmtpTestServer") -> logging.Logger:
    """Retrieve a logger instance.

    Args:
        name: The logger name. Defaults to "SmtpTestServer".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)
