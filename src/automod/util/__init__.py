"""
Utility functions and helpers for automod.

- **logger.py**: Colored console output through prompt_toolkit, rotating file logs
- **discord_utils.py**: Message conversion, embeds and the Discord sinks
- **format_utils.py**: Duration parsing and formatting
- **keyed_lock.py**: Per-key asyncio locks
"""
