"""seven-sync - incremental, encrypted mirroring with 7-Zip."""

__version__ = "0.1.0"
