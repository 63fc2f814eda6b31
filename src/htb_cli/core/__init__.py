"""Core: domain models, contracts and the services that drive the API.

Nothing under `core` prints or prompts; I/O lives in `adapters` and `cli`.
"""
