"""Exceptions raised by the external collaborators and the matchers."""


class ExtractionError(Exception):
    """Document text could not be extracted (unreadable input, OCR service failure)."""


class MatcherError(Exception):
    """A matcher failed to produce a usable answer (transport or malformed output)."""


class AccountingSystemError(Exception):
    """The accounting system could not be reached or returned an unexpected response."""
