"""
Default provider set: three hospitals, each holding one patient's history.
"""
from typing import Optional

from ledger_system.core.datashapes import Block, Record
from ledger_system.core.hashchain import BlockChain, new_genesis
from ledger_system.core.providers import Provider, ProviderRegistry

DEFAULT_DIFFICULTY = b"\x00\x00"

# (hospital, genesis record, follow-up record)
SEED_PROVIDERS = [
    (
        "Benh Vien Quoc Te",
        Record("1", "Bui Hai Duong", "public", "Normal", "GG"),
        Record("2", "Bui Hai Duong", "public", "Strong", "GS"),
    ),
    (
        "Benh Vien Thong Nhat",
        Record("3", "Tran The Chau", "public", "Weak", "YY"),
        Record("4", "Tran The Chau", "public", "Average", "YT"),
    ),
    (
        "Benh Vien Sai Gon",
        Record("5", "Luong Gia Kiet", "public", "Strong", "TT"),
        Record("6", "Luong Gia Kiet", "public", "Normal", "NM"),
    ),
]


def build_default_registry(
    difficulty: Optional[bytes] = None,
    max_attempts: Optional[int] = None
) -> ProviderRegistry:
    """Mine the seed records into a fresh registry."""
    difficulty = DEFAULT_DIFFICULTY if difficulty is None else difficulty
    registry = ProviderRegistry()

    for name, genesis_record, follow_up in SEED_PROVIDERS:
        chain = BlockChain(difficulty, new_genesis(genesis_record), max_attempts=max_attempts)
        chain.append(Block(record=follow_up))
        registry.add(Provider(name=name, chain=chain))

    return registry
