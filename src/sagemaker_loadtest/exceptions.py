"""Exceptions raised by the load test."""


class LoadTestError(Exception):
    """Base class for load test failures."""


class CredentialsError(LoadTestError):
    """Instance metadata service did not hand out usable credentials."""


class PayloadNotFoundError(LoadTestError):
    """Requested payload file is not in the audio pool."""
