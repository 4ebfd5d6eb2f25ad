"""wifctl's diagnostic logger

Commands print their results with click. This logger is for everything else: progress details, retries, and the reasons that things
failed. It writes to stderr, so it never mixes with output that is meant to be piped, like `wifctl token` or `wifctl get`.

:Module: wifctl.utils.logging
:Copyright: (c) 2026 by the wifctl authors, see AUTHORS for more info
:License: See the LICENSE file for details
"""
import logging
import sys

LOGGER = logging.getLogger("wifctl")

stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
LOGGER.addHandler(stderr_handler)

# Libraries that configure the root logger would otherwise print everything twice:
LOGGER.propagate = False

# The level comes from `LogLevel` in the configuration, which also quiets the chatty HTTP and Google API client loggers.
