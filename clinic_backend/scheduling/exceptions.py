"""Errors raised while computing doctor availability."""


class AvailabilityError(Exception):
    """Base class for availability failures."""


class InvalidArgument(AvailabilityError):
    """The doctor, date or duration of a request cannot be used."""


class SourceUnavailable(AvailabilityError):
    """Schedule rules, blocks or appointments could not be read."""
