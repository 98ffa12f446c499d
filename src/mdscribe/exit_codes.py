"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~mdscribe.exceptions.MdscribeError` subclass.
Shell wrappers can inspect the exit code to tell a missing API key apart
from an unreachable model server without parsing stderr.

Example::

    $ mdscribe format transcript.txt
    $ echo $?
    3   # EXIT_CONFIG_ERROR -- no API key configured for the provider
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_CONFIG_ERROR = 3
"""Settings are missing or invalid (unknown provider, missing API key, unsupported OAuth)."""

EXIT_SECRET_STORE_ERROR = 4
"""The secure credential store is unavailable or holds a corrupt record."""

EXIT_PROVIDER_ERROR = 5
"""The model provider answered with an error status or an unusable response."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_AUTH_FLOW_ERROR = 7
"""The OAuth device authorization flow ended without a token."""

EXIT_INTERRUPTED = 130
"""The user pressed Ctrl-C."""
