"""
Configuration management for the rollup.
"""
import json
import os
from dataclasses import dataclass, asdict

# Configuration constants
TOKEN_UNIT = 10**18
BATCH_SIZE = 32
MAX_AMOUNT = 2**128 - 1  # per-operation ceiling, well below the uint256 balance field
UINT256_MAX = 2**256 - 1
TREE_DEPTH = 32


@dataclass
class RollupConfig:
    """Ledger and batch limits."""
    batch_size: int = BATCH_SIZE
    max_amount: int = MAX_AMOUNT
    tree_depth: int = TREE_DEPTH

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if not 0 < self.max_amount <= UINT256_MAX:
            raise ValueError("max_amount must be within (0, 2**256 - 1]")
        if not 1 <= self.tree_depth <= 256:
            raise ValueError("tree_depth must be between 1 and 256")


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./rollup_data"
    write_buffer_size: int = 64 * 1024 * 1024  # 64MB
    max_open_files: int = 1000
    compression: str = "snappy"


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    rollup: RollupConfig
    database: DatabaseConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            rollup=RollupConfig(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            rollup=RollupConfig(**data.get('rollup', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'rollup': asdict(self.rollup),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring)
        }
