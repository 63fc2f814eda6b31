"""Domain models and enums.

Pure data: no HTTP, no CLI, no printing.
"""
