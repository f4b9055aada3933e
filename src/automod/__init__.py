"""
Automod - Rule-Based Discord Moderation Bot

Automod filters guild messages against per-server rules and escalates repeat
offenders automatically.

Core Components:

- **Detectors**: Banned words, invite and link filters, mention and caps spam,
  account age, and a sliding-window message rate tracker
- **Warning Ledger**: Append-only SQLite store of warnings; clearing only
  deactivates a record
- **Escalation**: Mute, kick and ban thresholds evaluated on every new warning
- **Guild Settings**: Per-server overrides merged onto the configured defaults

Usage:
    from automod.main import main
    main()
"""
