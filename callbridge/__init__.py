"""callbridge - live phone call bridge to a realtime speech AI receptionist."""

__version__ = "0.1.0"
