# handoff/errors.py
class HandoffError(Exception):
    """Base handoff error."""
    def __init__(self, msg: str = ""):
        super().__init__(msg)
        self.msg = msg

    def __str__(self):
        return self.msg or self.__class__.__name__

class MarketplaceError(HandoffError):
    """Marketplace fetch/accept failed (network, non-2xx, bad payload)."""

    def __init__(self, msg: str = "", *, status: int | None = None):
        super().__init__(msg)
        self.status = status

class OfferSendError(HandoffError):
    """Outbound offer could not be sent."""

class OfferConfirmError(HandoffError):
    """Sent offer could not be confirmed."""

class OfferCancelError(HandoffError):
    """Offer cancellation failed; a human must cancel it."""

class OfferNotFound(OfferCancelError):
    """Offer id unknown to both the local cache and the trading client."""

class AssetMismatchError(HandoffError):
    """Committed asset differs from the marketplace snapshot."""

    def __init__(self, msg: str = "", **ctx):
        super().__init__(msg)
        self.ctx = ctx

    def __str__(self):
        base = super().__str__()
        if self.ctx:
            details = ", ".join(f"{k}={v}" for k, v in self.ctx.items())
            return f"{base} [{details}]"
        return base

class PhaseError(HandoffError):
    """Illegal TrackedOffer phase transition."""

class SessionError(HandoffError):
    """Trading client could not establish session cookies. Fatal."""
