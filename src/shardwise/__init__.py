"""shardwise: adaptive test-shard scheduler."""

__version__ = "0.1.0"
