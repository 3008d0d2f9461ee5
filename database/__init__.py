from .transfer_ledger import TransferLedger, TransferEntry, TransferSuccessRecord

__all__ = ['TransferLedger', 'TransferEntry', 'TransferSuccessRecord']
