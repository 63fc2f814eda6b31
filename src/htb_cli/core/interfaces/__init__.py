"""Contracts (Protocol) implemented by the adapters and faked in tests."""
