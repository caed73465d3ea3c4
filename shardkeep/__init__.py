"""In-memory block meta, block link, key-block and archive storage for a blockchain indexer node."""

__version__ = "0.1.0"