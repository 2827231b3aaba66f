"""HF Data Link decoding components: squitters, system tables, positions and message outputs."""

__version__ = "1.6.1"