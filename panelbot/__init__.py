"""
Top-level package for the DiscoPanel Discord bot.

This package hosts:
- config loading and validation
- panel protocol adapters (Connect RPC and REST) and per-guild sessions
- persistent guild/pin storage with encrypted panel tokens
- the status field registry and the scheduled status updater
- Discord embeds, buttons and error replies
"""
