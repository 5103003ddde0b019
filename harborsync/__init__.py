"""HarborSync: resumable media and file-tree backups with scheduled runs."""

__version__ = "0.4.0"
