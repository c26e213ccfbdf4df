#!/usr/bin/env python3
"""
datashapes.py - Centralized Data Shape Definitions

All dataclasses and enums used across the ledger live here.
Almost no logic - just definitions of what data looks like.

Other files import from here to ensure consistent structures:
    from ledger_system.core.datashapes import Record, Block, ProposalStatus

Hashing, mining and chain logic live in hashchain.py.
Providers, the registry and the replication gate live in providers.py.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict


# Predecessor hash carried by every genesis block.
GENESIS_PRE_HASH = b"\x00"


def utc_now() -> datetime:
    """Aware UTC timestamp for new blocks."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class ProposalStatus(Enum):
    """
    Lifecycle of a proposed record.

    COLLECTING_VOTES -> APPROVED -> REPLICATING -> COMMITTED
    COLLECTING_VOTES -> REJECTED -> DISCARDED
    """
    COLLECTING_VOTES = "collecting_votes"
    APPROVED = "approved"
    REPLICATING = "replicating"
    COMMITTED = "committed"
    REJECTED = "rejected"
    DISCARDED = "discarded"


# =============================================================================
# RECORD - The immutable payload
# =============================================================================

@dataclass(frozen=True)
class Record:
    """
    Ownership/status event for a tracked patient record.

    Frozen: once a Record exists nothing about it changes. Each Block owns
    its own Record, so replicas get identical copies rather than a shared one.
    """
    ref_id: str                              # RRC reference id
    owner: str                               # Who owns the record (patient name)
    access_policy: str                       # "public", "private", ...
    status: str                              # "Normal", "Strong", "Weak", ...
    si: str                                  # Secondary identifier

    def to_text(self) -> str:
        """
        Canonical text form fed to the hasher.

        Field order is fixed: ref_id, owner, access_policy, status, si.
        """
        return (
            f"\n RRC ref:{self.ref_id}"
            f"\n ownership:{self.owner}"
            f"\n Access Policies:{self.access_policy}"
            f"\n Status:{self.status}"
            f"\n Si:{self.si}"
        )

    def copy(self) -> 'Record':
        """Identical, independent copy (one per replica)."""
        return Record(
            ref_id=self.ref_id,
            owner=self.owner,
            access_policy=self.access_policy,
            status=self.status,
            si=self.si,
        )


# =============================================================================
# BLOCK - The chained unit
# =============================================================================

@dataclass
class Block:
    """
    One chained entry: record + nonce + timestamp + predecessor hash + own hash.

    Two-phase construction:
        1. Build with the record (timestamp stamped here, nonce 0).
        2. The chain sets pre_hash and runs the miner, which finalizes
           nonce and hash together.

    After phase 2 the block is treated as immutable. hash is either empty
    (not mined yet) or equal to compute_block_hash(block).
    """
    record: Record
    timestamp: datetime = field(default_factory=utc_now)
    nonce: int = 0
    pre_hash: bytes = GENESIS_PRE_HASH
    hash: bytes = b""

    @property
    def is_mined(self) -> bool:
        return bool(self.hash)

    @property
    def hash_hex(self) -> str:
        return self.hash.hex().upper()

    @property
    def pre_hash_hex(self) -> str:
        return self.pre_hash.hex().upper()


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ChainVerification:
    """
    Outcome of a whole-chain check.

    Every adjacent pair is examined, so bad_indices lists all failures;
    first_bad_index is kept for quick diagnostics.
    """
    valid: bool
    block_count: int
    first_bad_index: Optional[int] = None
    bad_indices: List[int] = field(default_factory=list)


@dataclass
class ProposalResult:
    """
    What happened to a proposed record.

    blocks maps provider name -> the Block appended to that provider's chain.
    Empty when the proposal was rejected. history lists every status the
    proposal passed through, ending with the terminal one.
    """
    status: ProposalStatus
    record: Record
    votes_for: int
    votes_against: int
    votes_required: int
    blocks: Dict[str, Block] = field(default_factory=dict)
    history: List[ProposalStatus] = field(default_factory=list)

    def __post_init__(self):
        if not self.history:
            self.history.append(self.status)

    def advance(self, status: ProposalStatus):
        self.status = status
        self.history.append(status)

    @property
    def approved(self) -> bool:
        return self.status == ProposalStatus.COMMITTED
