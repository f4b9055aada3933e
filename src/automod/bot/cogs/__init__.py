"""
Discord cogs for automod.

- **events_listener.py**: on_ready bookkeeping and slash command error handling
- **message_listener.py**: feeds every guild message into the automod pipeline
- **automod_cmds.py**: the /automod group for filters, banned words and exemptions
- **warning_cmds.py**: /warn, /warnings, /clearwarnings and the /warnconfig group
"""
