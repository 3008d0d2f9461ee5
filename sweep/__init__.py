from .retry import retry_with_backoff
from .scheduler import SweepScheduler, CycleReport, floor6

__all__ = ['retry_with_backoff', 'SweepScheduler', 'CycleReport', 'floor6']
