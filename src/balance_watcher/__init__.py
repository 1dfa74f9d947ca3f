"""Balance Watcher - balance monitoring and alerting for EVM networks."""

__version__ = "0.1.0"
