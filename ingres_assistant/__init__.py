"""INGRES AI Assistant: groundwater chat gateway, streaming client and chat orchestration."""

__version__ = "0.1.0"
