#!/usr/bin/env python3
"""
providers.py - Provider Registry and Majority-Vote Replication Gate

Providers are independent holders of one BlockChain each. A proposed record
is voted on (one vote per provider, collected by a single coordinator) and,
on a strict majority, mined into every provider's chain.

Each provider mines its own Block for the approved record, so replicas end
up with different nonces and hashes for the same logical event. Chains are
only required to be internally consistent, never byte-identical.

Usage:
    registry = ProviderRegistry()
    registry.add(Provider("Hospital A", chain_a))
    registry.add(Provider("Hospital B", chain_b))
    registry.add(Provider("Hospital C", chain_c))

    gate = ReplicationGate(registry)
    result = gate.propose_record(record, [True, True, False])
    if result.approved:
        ...
    matches = query_by_owner(registry, "Bui Hai Duong")
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ledger_system.core.datashapes import (
    Block,
    ChainVerification,
    ProposalResult,
    ProposalStatus,
    Record,
)
from ledger_system.core.hashchain import (
    BlockChain,
    InvalidArgumentError,
    LedgerError,
    MiningCancelledError,
    MiningExhaustedError,
)
from ledger_system.core.ledger_logging import (
    LedgerCodes,
    query_logger,
    replication_logger,
)

logger = logging.getLogger(__name__)

VoteSource = Union[Sequence[bool], Callable[['Provider'], bool]]


class ReplicationAbortedError(LedgerError):
    """An approved record could not be mined into every chain; no chain changed."""
    pass


class _SharedCancel:
    """Cancel flag for sibling miners that also honours the caller's event."""

    def __init__(self, outer: Optional[threading.Event] = None):
        self._outer = outer
        self._inner = threading.Event()

    def set(self):
        self._inner.set()

    def is_set(self) -> bool:
        return self._inner.is_set() or (self._outer is not None and self._outer.is_set())


# =============================================================================
# PROVIDERS
# =============================================================================

@dataclass
class Provider:
    """A named holder of one independent chain replica."""
    name: str
    chain: BlockChain
    ledger: str = ""                         # Reserved for ledger metadata


class ProviderRegistry:
    """
    Ordered, fixed set of providers.

    Registration order is the order votes are collected in and the order
    replication and queries walk the providers.
    """

    def __init__(self, providers: Optional[Sequence[Provider]] = None):
        self._providers: List[Provider] = []
        for provider in providers or []:
            self.add(provider)

    def add(self, provider: Provider) -> Provider:
        """
        Register a provider.

        Raises:
            InvalidArgumentError: missing chain, duplicate name, or a chain
                already held by another provider
        """
        if provider is None or provider.chain is None:
            raise InvalidArgumentError("provider with a chain is required")
        if any(p.name == provider.name for p in self._providers):
            raise InvalidArgumentError(f"Duplicate provider name: {provider.name}")
        if any(p.chain is provider.chain for p in self._providers):
            raise InvalidArgumentError(f"Chain already held by another provider: {provider.name}")

        self._providers.append(provider)
        return provider

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self) -> Iterator[Provider]:
        return iter(list(self._providers))

    def __getitem__(self, index: int) -> Provider:
        return self._providers[index]

    def get(self, name: str) -> Optional[Provider]:
        """Provider by display name, None if unknown."""
        for provider in self._providers:
            if provider.name == name:
                return provider
        return None

    def names(self) -> List[str]:
        return [p.name for p in self._providers]

    def verify_all(self, include_genesis: bool = False) -> Dict[str, ChainVerification]:
        """Integrity report for every provider's chain."""
        return {
            p.name: p.chain.verify_chain(include_genesis=include_genesis)
            for p in self._providers
        }


# =============================================================================
# VOTING
# =============================================================================

def collect_votes(registry: ProviderRegistry, vote_source: VoteSource) -> List[bool]:
    """
    One vote per provider, in provider order.

    vote_source is either a sequence of booleans or a callable asked once
    per provider (the shell's console prompt).
    """
    if callable(vote_source):
        return [bool(vote_source(provider)) for provider in registry]

    votes = [bool(v) for v in vote_source]
    if len(votes) != len(registry):
        raise InvalidArgumentError(
            f"Expected {len(registry)} votes, got {len(votes)}"
        )
    return votes


def votes_required(provider_count: int) -> int:
    """Smallest yes count that passes: more than half, integer division."""
    return provider_count // 2 + 1


def majority_reached(votes_for: int, provider_count: int) -> bool:
    """Strict majority: a tie or exactly half does not pass."""
    return votes_for > provider_count // 2


# =============================================================================
# REPLICATION GATE
# =============================================================================

class ReplicationGate:
    """
    Majority-vote gate in front of multi-provider appends.

    On approval every provider gets its own new Block wrapping a copy of the
    record. Replication is all-or-nothing: every chain is locked, every
    block is mined against its own chain's tail, and blocks are pushed only
    once all of them are ready. If any mining run fails nothing is pushed.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        parallel: bool = False,
        max_workers: Optional[int] = None
    ):
        self.registry = registry
        self.parallel = parallel
        self.max_workers = max_workers

    def propose_record(
        self,
        record: Record,
        votes: VoteSource,
        cancel_event: Optional[threading.Event] = None
    ) -> ProposalResult:
        """
        Put a record to the vote and replicate it on approval.

        Args:
            record: Candidate record
            votes: One boolean per provider (or a callable per provider)
            cancel_event: Stops in-flight mining when set

        Returns:
            ProposalResult with status COMMITTED or DISCARDED

        Raises:
            InvalidArgumentError: missing record or wrong number of votes
            ReplicationAbortedError: approved but mining failed; no chain changed
        """
        if record is None:
            raise InvalidArgumentError("record is required")

        provider_count = len(self.registry)
        ballots = collect_votes(self.registry, votes)
        votes_for = sum(ballots)

        result = ProposalResult(
            status=ProposalStatus.COLLECTING_VOTES,
            record=record,
            votes_for=votes_for,
            votes_against=provider_count - votes_for,
            votes_required=votes_required(provider_count),
        )

        if not majority_reached(votes_for, provider_count):
            result.advance(ProposalStatus.REJECTED)
            replication_logger.log_info(
                LedgerCodes.REPL_REJECTED,
                f"Record {record.ref_id} rejected ({votes_for}/{provider_count} votes)"
            )
            result.advance(ProposalStatus.DISCARDED)
            return result

        result.advance(ProposalStatus.APPROVED)
        replication_logger.log_info(
            LedgerCodes.REPL_APPROVED,
            f"Record {record.ref_id} approved ({votes_for}/{provider_count} votes)"
        )

        result.advance(ProposalStatus.REPLICATING)
        result.blocks = self._replicate(record, cancel_event)
        result.advance(ProposalStatus.COMMITTED)

        replication_logger.log_info(
            LedgerCodes.REPL_COMMITTED,
            f"Record {record.ref_id} committed to {len(result.blocks)} providers"
        )
        return result

    def _replicate(
        self,
        record: Record,
        cancel_event: Optional[threading.Event]
    ) -> Dict[str, Block]:
        providers = list(self.registry)
        blocks = {p.name: Block(record=record.copy()) for p in providers}

        with ExitStack() as stack:
            # Registry order, so two gates can never deadlock on each other
            for provider in providers:
                stack.enter_context(provider.chain.locked())

            try:
                self._prepare_all(providers, blocks, cancel_event)
            except (MiningExhaustedError, MiningCancelledError) as e:
                replication_logger.log_error(
                    LedgerCodes.REPL_ABORTED,
                    f"Replication of {record.ref_id} aborted: {e}",
                    {'providers': [p.name for p in providers]}
                )
                raise ReplicationAbortedError(
                    f"Record {record.ref_id} not replicated: {e}"
                ) from e

            for provider in providers:
                provider.chain.commit(blocks[provider.name])
                logger.debug(
                    "Replicated %s to %s: nonce=%d hash=%s...",
                    record.ref_id, provider.name,
                    blocks[provider.name].nonce, blocks[provider.name].hash_hex[:16]
                )

        return blocks

    def _prepare_all(
        self,
        providers: List[Provider],
        blocks: Dict[str, Block],
        cancel_event: Optional[threading.Event]
    ):
        """Mine every provider's block against its chain's tail."""
        if not self.parallel or len(providers) < 2:
            for provider in providers:
                provider.chain.prepare(blocks[provider.name], cancel_event)
            return

        # Stop sibling miners as soon as one fails
        abort = _SharedCancel(cancel_event)
        workers = self.max_workers or len(providers)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(provider.chain.prepare, blocks[provider.name], abort)
                for provider in providers
            ]
            errors = []
            for future in as_completed(futures):
                try:
                    future.result()
                except (MiningExhaustedError, MiningCancelledError) as e:
                    abort.set()
                    errors.append(e)
                except Exception:
                    abort.set()
                    raise

        if errors:
            exhausted = [e for e in errors if isinstance(e, MiningExhaustedError)]
            raise (exhausted[0] if exhausted else errors[0])


def propose_record(
    record: Record,
    registry: ProviderRegistry,
    votes: VoteSource,
    parallel: bool = False,
    cancel_event: Optional[threading.Event] = None
) -> ProposalResult:
    """Convenience wrapper around ReplicationGate.propose_record."""
    return ReplicationGate(registry, parallel=parallel).propose_record(
        record, votes, cancel_event=cancel_event
    )


# =============================================================================
# QUERIES
# =============================================================================

def query_by_owner(
    registry: ProviderRegistry,
    owner: str
) -> Dict[str, List[Tuple[Record, datetime]]]:
    """
    Every record owned by `owner`, grouped by provider.

    Exact, case-sensitive match on the record's owner field. Providers with
    no match map to an empty list. Read only.
    """
    results: Dict[str, List[Tuple[Record, datetime]]] = {}

    for provider in registry:
        results[provider.name] = [
            (block.record, block.timestamp)
            for block in provider.chain.get_by_owner(owner)
        ]

    if not any(results.values()):
        query_logger.log_info(LedgerCodes.QUERY_EMPTY, f"No records for owner {owner!r}")

    return results
