"""mdmindmap: live markdown mind map viewer with standalone HTML export."""

__version__ = "0.1.0"
