# handoff/__init__.py
"""
Marketplace → trade-offer handoff engine.

Provides:
- Marketplace snapshot schemas and the engine-owned TrackedOffer record
- Registry of in-flight offers keyed by trade id
- Services for polling/diffing, offer lifecycle, grace-period deadlines and completion
- HandoffEngine, the single owner task wiring everything together
"""
