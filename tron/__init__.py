from .client import (
    TronClient,
    classify_rejection,
    decode_node_message,
    block_number_of,
    block_timestamp_of,
    contract_result_of,
)

__all__ = [
    'TronClient',
    'classify_rejection',
    'decode_node_message',
    'block_number_of',
    'block_timestamp_of',
    'contract_result_of',
]
