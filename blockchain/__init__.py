"""
EOS blockchain access: keys, serialization, redundant RPC and explorer lookups.
"""
from .eos import (
    EOS_API_ENDPOINTS,
    EOS_QUANTITY_PRECISION,
    EosPrivateKey,
    TransferAction,
    create_transfer_action,
)
from .rpc import EosRpc, first_success
from .bloks import Bloks

__all__ = [
    'EOS_API_ENDPOINTS',
    'EOS_QUANTITY_PRECISION',
    'EosPrivateKey',
    'TransferAction',
    'create_transfer_action',
    'EosRpc',
    'first_success',
    'Bloks',
]
