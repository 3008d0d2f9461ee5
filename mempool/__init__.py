from .pending_manager import PendingTxManager, PendingMultiSignTx

__all__ = ['PendingTxManager', 'PendingMultiSignTx']
