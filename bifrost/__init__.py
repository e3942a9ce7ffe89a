"""
Bifrost Package

Local leader schedule computation for slot-based proof-of-stake clusters.

Core imports are lazily loaded so that importing a submodule does not pull
in the whole package:

    from bifrost.schedule import ScheduleCache, LeaderTracker
    from bifrost.exceptions import EmptyStakeSet
"""

# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name in ('ScheduleCache', 'LeaderTracker', 'ScheduleBuilder', 'StakeSnapshot', 'ValidatorId'):
        from . import schedule
        return getattr(schedule, name)
    elif name == 'BifrostException':
        from .exceptions import BifrostException
        return BifrostException
    raise AttributeError(f"module 'bifrost' has no attribute {name!r}")

__all__ = [
    'ScheduleCache',
    'LeaderTracker',
    'ScheduleBuilder',
    'StakeSnapshot',
    'ValidatorId',
    'BifrostException',
]
