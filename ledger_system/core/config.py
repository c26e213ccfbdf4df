#!/usr/bin/env python3
"""
Ledger Configuration
Environment-driven settings for mining, replication and logging
"""
import os

from dotenv import load_dotenv

load_dotenv()

DIGEST_SIZE = 64
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class LedgerConfig:
    """Configuration for the replicated ledger"""

    # Mining
    DIFFICULTY_HEX = os.getenv('LEDGER_DIFFICULTY', '0000')
    MAX_MINING_ATTEMPTS = int(os.getenv('LEDGER_MAX_MINING_ATTEMPTS', 0))  # 0 = unbounded

    # Replication
    PARALLEL_REPLICATION = os.getenv('LEDGER_PARALLEL_REPLICATION', 'false').lower() == 'true'
    MAX_WORKERS = int(os.getenv('LEDGER_MAX_WORKERS', 4))

    # Logging Configuration
    LOG_LEVEL = os.getenv('LEDGER_LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LEDGER_LOG_FILE', '')  # empty = stderr

    DEBUG = os.getenv('LEDGER_DEBUG', 'false').lower() == 'true'

    @classmethod
    def get_difficulty(cls) -> bytes:
        """Difficulty target as bytes"""
        return bytes.fromhex(cls.DIFFICULTY_HEX)

    @classmethod
    def get_max_attempts(cls):
        """Attempt cap for mining, None when unbounded"""
        return cls.MAX_MINING_ATTEMPTS or None

    @classmethod
    def validate_config(cls):
        """Validate configuration settings"""
        issues = []

        try:
            difficulty = cls.get_difficulty()
        except ValueError:
            issues.append(f"DIFFICULTY_HEX is not valid hex: {cls.DIFFICULTY_HEX!r}")
        else:
            if len(difficulty) > DIGEST_SIZE:
                issues.append(f"DIFFICULTY_HEX must be at most {DIGEST_SIZE} bytes")

        if cls.MAX_MINING_ATTEMPTS < 0:
            issues.append("MAX_MINING_ATTEMPTS cannot be negative")

        if cls.MAX_WORKERS < 1:
            issues.append("MAX_WORKERS must be at least 1")

        if str(cls.LOG_LEVEL).upper() not in LOG_LEVELS:
            issues.append(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

        return issues


# Environment-specific configurations
class DevelopmentConfig(LedgerConfig):
    """Development environment configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(LedgerConfig):
    """Production environment configuration"""
    DEBUG = False
    LOG_LEVEL = 'INFO'
    PARALLEL_REPLICATION = True


class TestConfig(LedgerConfig):
    """Test environment configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'
    DIFFICULTY_HEX = '00'  # one byte keeps mining fast
    MAX_MINING_ATTEMPTS = 0
    PARALLEL_REPLICATION = False


# Configuration factory
def get_config(env=None):
    """Get configuration based on environment"""
    env = env or os.getenv('LEDGER_ENV', 'development')

    configs = {
        'development': DevelopmentConfig,
        'production': ProductionConfig,
        'test': TestConfig
    }

    return configs.get(env, DevelopmentConfig)
