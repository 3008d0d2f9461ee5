from .supervisor import ProcessSupervisor, RestartPolicy
from .heartbeat_client import HeartbeatWatcher

__all__ = ['ProcessSupervisor', 'RestartPolicy', 'HeartbeatWatcher']
