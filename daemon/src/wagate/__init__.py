"""wagate - keeps a messaging transport session alive and queues outbound sends."""

__version__ = "0.1.0"
