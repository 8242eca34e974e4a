"""
Error taxonomy of the auction engine.

Every member except ``NotificationFailure`` propagates to callers of the bid
and exclusion operations. ``status_code`` is what the API layer answers with.
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional

from proxybid.clients import DocumentConflict, DocumentExists, DocumentStoreUnavailable


class AuctionEngineError(Exception):
    """Base exception for the auction engine."""
    code = "auction_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class NotFound(AuctionEngineError):
    """Referenced auction, bid, exclusion or setting does not exist."""
    code = "not_found"
    status_code = 404


class InvalidState(AuctionEngineError):
    """Action attempted against an auction in the wrong lifecycle state."""
    code = "invalid_state"
    status_code = 409


class Forbidden(AuctionEngineError):
    code = "forbidden"
    status_code = 403


class BidderExcluded(Forbidden):
    """The seller excluded this bidder from the auction."""
    code = "bidder_excluded"


class NotAuctionSeller(Forbidden):
    """Only the auction's seller may manage its bidders."""
    code = "not_auction_seller"


class ValidationError(AuctionEngineError):
    code = "validation_error"
    status_code = 422


class BidTooLow(ValidationError):
    """Ceiling below the minimum acceptable bid; carries that minimum."""
    code = "bid_too_low"

    def __init__(self, minimum_bid: float, ceiling: Optional[float] = None):
        super().__init__(
            f"Bid must be at least {minimum_bid:.2f}",
            minimum_bid=minimum_bid,
        )
        self.minimum_bid = minimum_bid
        self.ceiling = ceiling


class Conflict(AuctionEngineError):
    """Concurrent write contention that outlasted the CAS retry budget."""
    code = "conflict"
    status_code = 409
    retryable = True


class TransientStoreFailure(AuctionEngineError):
    """Timeout or connection failure talking to the store."""
    code = "store_unavailable"
    status_code = 503
    retryable = True


class NotificationFailure(AuctionEngineError):
    """Best-effort outbound notification failed. Logged, never raised to callers."""
    code = "notification_failure"


@contextmanager
def store_errors():
    """Surface store failures in the engine's taxonomy.

    Timeouts and connection failures become ``TransientStoreFailure``; a lost
    CAS race or a concurrent insert becomes ``Conflict``.
    """
    try:
        yield
    except DocumentStoreUnavailable as e:
        raise TransientStoreFailure(str(e)) from e
    except (DocumentConflict, DocumentExists) as e:
        raise Conflict(f"Concurrent update conflict, please retry: {e}") from e
