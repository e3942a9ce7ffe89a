"""
Bifrost Exceptions

Custom exception classes for leader schedule construction and lookup.
"""


class BifrostException(Exception):
    """Base exception for Bifrost."""
    pass


class ScheduleError(BifrostException):
    """Leader schedule could not be built from the supplied input."""
    pass


class EmptyStakeSet(ScheduleError):
    """Stake weights are empty or all zero."""
    def __init__(self, message: str = None):
        super().__init__(message or "Stake set is empty after dropping zero-stake entries")


class ConflictingStake(ScheduleError):
    """The same validator identity appears with different stake values."""
    def __init__(self, validator_id, stakes):
        self.validator_id = validator_id
        self.stakes = tuple(stakes)
        super().__init__(
            f"Conflicting stake for validator {validator_id}: "
            f"{', '.join(str(s) for s in self.stakes)}"
        )


class WeightOverflow(ScheduleError):
    """Cumulative stake does not fit in an unsigned 64-bit integer."""
    def __init__(self, index: int, running_total: int):
        self.index = index
        self.running_total = running_total
        super().__init__(
            f"Cumulative stake overflows u64 at entry {index} (sum {running_total})"
        )


class ZeroSlots(ScheduleError):
    """slots_per_epoch is zero."""
    def __init__(self, message: str = None):
        super().__init__(message or "slots_per_epoch must be greater than zero")


class InvalidStake(ScheduleError):
    """Stake is not an unsigned 64-bit integer."""
    pass


class InvalidValidatorId(ScheduleError):
    """Validator identity is not a valid 32-byte key."""
    pass


class CacheError(BifrostException):
    """Schedule cache error."""
    pass


class CacheClosed(CacheError):
    """Schedule cache was torn down."""
    pass


class ScheduleTimeout(CacheError):
    """Timed out waiting for another caller's in-flight build."""
    def __init__(self, epoch: int, timeout: float):
        self.epoch = epoch
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for epoch {epoch} schedule")


class ConfigurationError(BifrostException):
    """Configuration error."""
    pass
