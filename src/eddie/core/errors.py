"""Error taxonomy for the decision core.

Expected outcomes (CLEAR, HOLD, skipped indicators) are return values,
not exceptions.
"""


class ConfigurationError(ValueError):
    """Invalid or unrecognized configuration."""

    pass


class DataUnavailableError(LookupError):
    """Not enough snapshot history for the requested lookback."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"{indicator}: need {required} snapshots, have {available}"
        )


class SnapshotDecodeError(ValueError):
    """Persisted snapshot could not be decoded."""

    pass
