"""Error types raised by the detection and escalation layers."""


class GridwatchError(Exception):
    """Base class for gridwatch errors."""


class InvalidTransitionError(GridwatchError, ValueError):
    """A notification status change that the lifecycle does not allow."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Illegal notification transition: {current} -> {target}")
        self.current = current
        self.target = target


class EscalationConfigError(GridwatchError, ValueError):
    """The escalation level table is malformed."""


class MeterNotFoundError(GridwatchError, LookupError):
    pass


class NoReadingError(GridwatchError, LookupError):
    pass
