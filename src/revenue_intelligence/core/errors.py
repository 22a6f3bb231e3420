"""Error taxonomy shared by the scoring, batch, and aggregation layers."""

from __future__ import annotations


class ScanError(Exception):
    """Base class for every error raised by the revenue engine."""


class ValidationError(ScanError, ValueError):
    """Malformed or out-of-range input, raised before any scan is scheduled."""


class NotFound(ScanError, LookupError):
    """No billing or registry record exists for a provider identifier."""

    def __init__(self, npi: str, message: str = ""):
        self.npi = npi
        super().__init__(message or f"No billing record found for NPI {npi}")


class DataUnavailable(ScanError, RuntimeError):
    """The benchmark or reference dataset is not loaded."""
