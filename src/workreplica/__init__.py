"""workreplica - local searchable replica of a remote work item store."""

__version__ = "0.1.0"
