"""
Automod core: detectors, rate tracking, the warning ledger, escalation and the
orchestrator that ties them together. Nothing here imports discord; the
orchestrator reaches the platform only through injected sinks.
"""
