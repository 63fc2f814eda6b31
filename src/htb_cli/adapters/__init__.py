"""Adapters: HTTP transport, ticker, webhook and release-check I/O."""
