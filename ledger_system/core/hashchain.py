#!/usr/bin/env python3
"""
hashchain.py - Append-Only Proof-of-Work Hash Chain

Each provider keeps one of these. Blocks are mined against a fixed
difficulty prefix and linked to their predecessor by hash, so altering any
mined block breaks verification from that point on.

Architecture:
    Core (machine-optimized):
        - compute_block_hash: SHA-512 over record, nonce, timestamp, pre_hash
        - mine_block: brute-force nonce search against a difficulty prefix
        - BlockChain: genesis, append, verify, owner lookups

    Render Layer (human-readable, on-demand):
        - ChainRenderer: Translates blocks and chains for human consumption
        - Never modifies a chain - read only

Usage:
    from ledger_system.core.hashchain import BlockChain, ChainRenderer
    from ledger_system.core.datashapes import Block, Record

    chain = BlockChain(b"\\x00\\x00", Block(Record("1", "A", "public", "Normal", "X")))
    chain.append(Block(Record("2", "A", "public", "Strong", "Y")))
    report = chain.verify_chain()
    print(ChainRenderer().render_chain(chain))

See: datashapes.py for Record, Block, ChainVerification definitions
"""

import hashlib
import logging
import struct
import threading
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta
from typing import Dict, Iterator, List, Optional

from ledger_system.core.datashapes import (
    Block,
    ChainVerification,
    GENESIS_PRE_HASH,
    Record,
)
from ledger_system.core.ledger_logging import LedgerCodes, chain_logger, mining_logger

logger = logging.getLogger(__name__)

DIGEST_SIZE = hashlib.sha512().digest_size   # 64 bytes
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


# =============================================================================
# LEDGER EXCEPTIONS
# =============================================================================

class LedgerError(Exception):
    """Base class for everything the ledger raises."""
    pass


class InvalidArgumentError(LedgerError, ValueError):
    """A required argument was missing or unusable (None difficulty, no predecessor, ...)."""
    pass


class StructuralViolationError(LedgerError):
    """A prepared block no longer links to the chain tail it was mined against."""
    pass


class MiningExhaustedError(LedgerError):
    """Raised when an attempt cap is set and no nonce satisfied the difficulty."""

    def __init__(self, attempts: int, difficulty: bytes):
        self.attempts = attempts
        self.difficulty = difficulty
        super().__init__(
            f"No nonce matched difficulty {difficulty.hex() or '(empty)'} "
            f"after {attempts} attempts"
        )


class MiningCancelledError(LedgerError):
    """Raised when the cancel event was set while mining."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Mining cancelled after {attempts} attempts")


# =============================================================================
# HASHER
# =============================================================================

def _timestamp_micros(timestamp: datetime) -> int:
    """Microseconds since the Unix epoch. Naive datetimes are read as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (timestamp - _EPOCH) // _MICROSECOND


def serialize_block(block: Block) -> bytes:
    """
    Byte layout hashed for a block, in fixed order:

        record     4-byte big-endian length + UTF-8 of record.to_text()
        nonce      8-byte big-endian unsigned
        timestamp  8-byte big-endian signed, microseconds since epoch (UTC)
        pre_hash   raw bytes
    """
    record_bytes = block.record.to_text().encode("utf-8")
    return b"".join((
        struct.pack(">I", len(record_bytes)),
        record_bytes,
        struct.pack(">Q", block.nonce),
        struct.pack(">q", _timestamp_micros(block.timestamp)),
        bytes(block.pre_hash),
    ))


def compute_block_hash(block: Block) -> bytes:
    """SHA-512 digest of the block's current content. Pure, no side effects."""
    return hashlib.sha512(serialize_block(block)).digest()


# =============================================================================
# MINER
# =============================================================================

def _check_difficulty(difficulty: Optional[bytes]) -> bytes:
    if difficulty is None:
        raise InvalidArgumentError("difficulty is required")
    difficulty = bytes(difficulty)
    if len(difficulty) > DIGEST_SIZE:
        raise InvalidArgumentError(
            f"difficulty is {len(difficulty)} bytes, digest is only {DIGEST_SIZE}"
        )
    return difficulty


def mine_block(
    block: Block,
    difficulty: bytes,
    max_attempts: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None
) -> bytes:
    """
    Search nonces until the digest starts with the difficulty prefix.

    Pre-increment, then test: a fresh block (nonce 0) is first tried at
    nonce 1. The whole difficulty is compared, whatever its length. An empty
    difficulty matches on the first trial.

    Mutates block.nonce. Returns the digest; the caller assigns block.hash.

    Args:
        block: Block to mine (pre_hash must already be set)
        difficulty: Required digest prefix
        max_attempts: Give up after this many trials (None = unbounded)
        cancel_event: Checked between trials; stops mining when set

    Raises:
        InvalidArgumentError: difficulty missing or longer than the digest
        MiningExhaustedError: max_attempts trials without a match
        MiningCancelledError: cancel_event was set
    """
    difficulty = _check_difficulty(difficulty)
    if block is None:
        raise InvalidArgumentError("block is required")
    if max_attempts is not None and max_attempts < 1:
        raise InvalidArgumentError(f"max_attempts must be positive, got {max_attempts}")

    prefix_len = len(difficulty)
    attempts = 0

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise MiningCancelledError(attempts)
        if max_attempts is not None and attempts >= max_attempts:
            raise MiningExhaustedError(attempts, difficulty)

        block.nonce += 1
        attempts += 1
        digest = compute_block_hash(block)
        if digest[:prefix_len] == difficulty:
            return digest


# =============================================================================
# BLOCK CHECKS
# =============================================================================

def verify_block(block: Block, difficulty: Optional[bytes] = None) -> bool:
    """
    Block reproduces its stored hash from its current fields.

    With a difficulty, the stored hash must also start with it.
    """
    if not block.is_mined:
        return False
    if block.hash != compute_block_hash(block):
        return False
    if difficulty is not None:
        return block.hash[:len(difficulty)] == bytes(difficulty)
    return True


def verify_link(block: Block, prev_block: Optional[Block]) -> bool:
    """prev_block is intact and block.pre_hash is its digest."""
    if prev_block is None:
        raise InvalidArgumentError("prev_block is required")
    return verify_block(prev_block) and block.pre_hash == compute_block_hash(prev_block)


# =============================================================================
# BLOCK CHAIN
# =============================================================================

class BlockChain:
    """
    Append-only, proof-of-work hash chain with one fixed difficulty.

    Never empty: the constructor mines the genesis block. Every append
    links the new block to the tail's mined hash and mines it against the
    chain's difficulty. The lock covers "read tail hash, mine, push" so
    concurrent appenders cannot mine against a stale tail, and readers take
    a snapshot under the same lock.
    """

    def __init__(
        self,
        difficulty: bytes,
        genesis: Block,
        max_attempts: Optional[int] = None
    ):
        """
        Mine the genesis block and start the chain.

        Args:
            difficulty: Digest prefix every block must match. Fixed for life.
            genesis: First block. Its pre_hash is expected to be the sentinel.
            max_attempts: Optional cap applied to every mining run.
        """
        self._difficulty = _check_difficulty(difficulty)
        if genesis is None:
            raise InvalidArgumentError("genesis block is required")

        self.max_attempts = max_attempts
        self._lock = threading.RLock()
        self._blocks: List[Block] = []

        genesis.hash = self._mine(genesis, None)
        self._blocks.append(genesis)
        logger.debug(
            "Genesis mined: nonce=%d hash=%s...",
            genesis.nonce, genesis.hash_hex[:16]
        )

    @property
    def difficulty(self) -> bytes:
        return self._difficulty

    # =========================================================================
    # PUBLIC API - Append
    # =========================================================================

    def append(self, block: Block, cancel_event: Optional[threading.Event] = None) -> Block:
        """
        Link, mine and push a block.

        This is the ONLY way to grow a chain. No updates, no deletes.

        Raises:
            InvalidArgumentError: block is None
            MiningExhaustedError / MiningCancelledError: chain is left unchanged
        """
        with self._lock:
            self.prepare(block, cancel_event)
            self._blocks.append(block)

        logger.debug(
            "Appended block #%d: nonce=%d hash=%s...",
            len(self._blocks) - 1, block.nonce, block.hash_hex[:16]
        )
        return block

    @contextmanager
    def locked(self):
        """Hold the chain's append lock (used by the replication gate)."""
        with self._lock:
            yield self

    def prepare(self, block: Block, cancel_event: Optional[threading.Event] = None) -> Block:
        """
        Link block to the current tail and mine it, without pushing.

        Caller must hold locked() so the tail cannot move; this method does
        not take the lock itself, which lets worker threads mine while the
        coordinator holds it.
        """
        if block is None:
            raise InvalidArgumentError("block is required")

        block.pre_hash = self._blocks[-1].hash
        block.hash = self._mine(block, cancel_event)
        return block

    def _mine(self, block: Block, cancel_event: Optional[threading.Event]) -> bytes:
        try:
            return mine_block(block, self._difficulty, self.max_attempts, cancel_event)
        except MiningExhaustedError as e:
            mining_logger.log_warning(
                LedgerCodes.MINE_EXHAUSTED,
                f"Gave up on record {block.record.ref_id}: {e}",
                {'attempts': e.attempts, 'difficulty': self._difficulty.hex().upper()}
            )
            raise
        except MiningCancelledError as e:
            mining_logger.log_info(
                LedgerCodes.MINE_CANCELLED,
                f"Mining of record {block.record.ref_id} cancelled after {e.attempts} attempts"
            )
            raise

    def commit(self, block: Block) -> Block:
        """
        Push a block produced by prepare().

        Raises:
            StructuralViolationError: block does not link to the current tail
                or does not satisfy the difficulty
        """
        with self._lock:
            tail = self._blocks[-1]
            if block.pre_hash != tail.hash or not verify_block(block, self._difficulty):
                chain_logger.log_error(
                    LedgerCodes.CHAIN_TAIL_MOVED,
                    f"Rejected commit of record {block.record.ref_id}",
                    {'tail_index': len(self._blocks) - 1, 'tail_hash': tail.hash_hex[:16]}
                )
                raise StructuralViolationError(
                    f"Block does not extend tail #{len(self._blocks) - 1} "
                    f"({tail.hash_hex[:16]}...)"
                )
            self._blocks.append(block)
        return block

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    def __len__(self) -> int:
        with self._lock:
            return len(self._blocks)

    def __getitem__(self, index: int) -> Block:
        with self._lock:
            return self._blocks[index]

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks())

    def blocks(self) -> List[Block]:
        """Snapshot of the chain."""
        with self._lock:
            return list(self._blocks)

    @property
    def last_block(self) -> Block:
        with self._lock:
            return self._blocks[-1]

    def get_by_owner(self, owner: str) -> List[Block]:
        """Blocks whose record owner equals owner exactly (case-sensitive)."""
        return [b for b in self.blocks() if b.record.owner == owner]

    # =========================================================================
    # VERIFICATION
    # =========================================================================

    def verify_chain(self, include_genesis: bool = False) -> ChainVerification:
        """
        Walk the entire chain and verify integrity.

        For each adjacent pair (prev, cur): cur reproduces its hash, prev
        reproduces its hash, and cur.pre_hash is prev's digest. A failing
        pair is reported at cur's index. Every pair is checked.

        Args:
            include_genesis: Also check the genesis block's own hash and
                that it satisfies the difficulty (reported at index 0)
        """
        blocks = self.blocks()
        bad_indices: List[int] = []

        if include_genesis and not verify_block(blocks[0], self._difficulty):
            bad_indices.append(0)

        for index in range(1, len(blocks)):
            prev, cur = blocks[index - 1], blocks[index]
            if not (verify_block(cur) and verify_link(cur, prev)):
                bad_indices.append(index)

        if bad_indices:
            chain_logger.log_warning(
                LedgerCodes.CHAIN_INVALID,
                f"Chain failed verification at block #{bad_indices[0]}",
                {'bad_indices': bad_indices, 'block_count': len(blocks)}
            )

        return ChainVerification(
            valid=not bad_indices,
            block_count=len(blocks),
            first_bad_index=bad_indices[0] if bad_indices else None,
            bad_indices=bad_indices,
        )

    def is_valid(self) -> bool:
        """Whole-chain pass/fail (genesis only checked as a predecessor)."""
        return self.verify_chain().valid

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def stats(self) -> Dict:
        """Get chain statistics."""
        blocks = self.blocks()
        by_owner: Dict[str, int] = {}
        by_status: Dict[str, int] = {}

        for block in blocks:
            by_owner[block.record.owner] = by_owner.get(block.record.owner, 0) + 1
            by_status[block.record.status] = by_status.get(block.record.status, 0) + 1

        tip = blocks[-1].hash_hex

        return {
            'block_count': len(blocks),
            'difficulty': self._difficulty.hex().upper(),
            'tip_hash': tip[:16] + "..." if tip else "",
            'total_nonce_work': sum(b.nonce for b in blocks),
            'by_owner': by_owner,
            'by_status': by_status,
            'first_block': blocks[0].timestamp.isoformat(),
            'last_block': blocks[-1].timestamp.isoformat(),
        }


# =============================================================================
# RENDERER - Human-readable views
# =============================================================================

class ChainRenderer:
    """
    Human-readable views of chains, blocks and query results.

    This is a READ-ONLY render layer - never modifies a chain.
    """

    def __init__(self, hash_width: Optional[int] = None):
        # None shows full hex digests
        self.hash_width = hash_width

    def _hex(self, value: str) -> str:
        if self.hash_width is None or len(value) <= self.hash_width:
            return value
        return value[:self.hash_width] + "..."

    @staticmethod
    def _time(timestamp: datetime) -> str:
        return timestamp.strftime("%Y-%m-%d %H:%M:%S")

    def render_record(self, record: Record) -> str:
        """Record fields, one per line."""
        return '\n'.join([
            f"RRC ref:         {record.ref_id}",
            f"Ownership:       {record.owner}",
            f"Access Policies: {record.access_policy}",
            f"Status:          {record.status}",
            f"Si:              {record.si}",
        ])

    def render_block(self, block: Block, index: Optional[int] = None, compact: bool = False) -> str:
        """Render single block, human readable."""
        label = f"#{index}" if index is not None else "Block"

        if compact:
            return (
                f"{label} | {self._time(block.timestamp)} | {block.record.ref_id} | "
                f"{block.record.owner} | {block.record.status} | {block.hash_hex[:16]}"
            )

        lines = [
            f"╭─ {label} {'─' * 50}",
            f"│ Hash:      {self._hex(block.hash_hex) or '(not mined)'}",
            f"│ Hash prev: {self._hex(block.pre_hash_hex)}",
            f"│ Nonce:     {block.nonce}",
            f"│ Time:      {self._time(block.timestamp)}",
            f"│ ─── Record ───",
        ]
        lines.extend(f"│ {line}" for line in self.render_record(block.record).split('\n'))
        lines.append(f"╰{'─' * 60}")

        return '\n'.join(lines)

    def render_chain(
        self,
        chain: BlockChain,
        compact: bool = False,
        limit: Optional[int] = None
    ) -> str:
        """Render every block (or the last `limit`) in chain order."""
        blocks = chain.blocks()
        total = len(blocks)
        start = 0

        if limit is not None and total > limit:
            start = total - limit
            header = f"Showing last {limit} of {total} blocks:\n"
        else:
            header = f"All {total} blocks:\n"

        lines = [header]
        for index in range(start, total):
            lines.append(self.render_block(blocks[index], index=index, compact=compact))

        return '\n'.join(lines)

    def render_query(self, results: Dict[str, list]) -> str:
        """
        Owner query results grouped by provider.

        results: provider name -> [(Record, timestamp), ...]
        """
        lines = []
        for provider_name, matches in results.items():
            lines.append(f"Provider: {provider_name}")
            if not matches:
                lines.append("  No records")
                continue
            for record, timestamp in matches:
                for line in self.render_record(record).split('\n'):
                    lines.append(f"  {line}")
                lines.append(f"  Time:            {self._time(timestamp)}")
                lines.append("")

        return '\n'.join(lines).rstrip('\n')

    def render_verification(self, name: str, verification: ChainVerification) -> str:
        """Chain verification results in plain language."""
        if verification.valid:
            return f"✓ {name}: chain verified ({verification.block_count} blocks)"

        bad = ', '.join(f"#{i}" for i in verification.bad_indices)
        return (
            f"✗ {name}: verification FAILED at block #{verification.first_bad_index}\n"
            f"  Broken links: {bad}"
        )

    def render_stats(self, chain: BlockChain) -> str:
        """Overall chain statistics."""
        stats = chain.stats()

        lines = [
            "╭─ Chain Statistics ───────────────────────────────────",
            f"│ Blocks:     {stats['block_count']}",
            f"│ Difficulty: {stats['difficulty'] or '(none)'}",
            f"│ Tip hash:   {stats['tip_hash']}",
            f"│ Nonce work: {stats['total_nonce_work']}",
            "│",
            "│ By Owner:",
        ]
        for owner, count in sorted(stats['by_owner'].items()):
            lines.append(f"│   {owner}: {count}")

        lines.append(f"╰{'─' * 55}")
        return '\n'.join(lines)


def new_genesis(record: Record) -> Block:
    """Genesis block carrying the sentinel predecessor hash."""
    return Block(record=record, pre_hash=GENESIS_PRE_HASH)
