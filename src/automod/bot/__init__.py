"""Discord-facing part of automod: cogs and their wiring."""
