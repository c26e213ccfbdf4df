"""
Ledger engine: hashing, mining, chains, providers and the replication gate.

    from ledger_system.core import BlockChain, Block, Record, ProviderRegistry
"""

from ledger_system.core.datashapes import (
    Block,
    ChainVerification,
    GENESIS_PRE_HASH,
    ProposalResult,
    ProposalStatus,
    Record,
)
from ledger_system.core.hashchain import (
    BlockChain,
    ChainRenderer,
    InvalidArgumentError,
    LedgerError,
    MiningCancelledError,
    MiningExhaustedError,
    StructuralViolationError,
    compute_block_hash,
    mine_block,
    new_genesis,
    verify_block,
    verify_link,
)
from ledger_system.core.providers import (
    Provider,
    ProviderRegistry,
    ReplicationAbortedError,
    ReplicationGate,
    collect_votes,
    majority_reached,
    propose_record,
    query_by_owner,
)
