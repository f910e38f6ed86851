"""Exception types raised by the precomputation engine."""


class ConfigurationError(ValueError):
    """Invalid configuration detected at component entry.

    Raised before any output is produced, e.g. for a non-positive time window,
    a negative routing delay or an inconsistent clustering request.
    """


class MissingCostError(KeyError):
    """No cost is defined for an ordered station pair."""

    def __init__(self, from_id, to_id, kind: str = 'cost'):
        self.from_id = from_id
        self.to_id = to_id
        self.kind = kind
        super().__init__(f"No {kind} available for station pair ({from_id}, {to_id})")

    def __str__(self):
        return self.args[0]
