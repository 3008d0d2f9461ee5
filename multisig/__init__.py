from .orchestrator import MultiSignOrchestrator, TransferOutcome, TransferState

__all__ = ['MultiSignOrchestrator', 'TransferOutcome', 'TransferState']
