"""Domain errors raised by the microgrid engine.

Handlers map these onto HTTP responses using ``http_status``; the engine
itself never recovers from them.
"""

from typing import Optional


class MarketError(Exception):
    """Base microgrid market error."""

    def __init__(self, message: str, http_status: int = 500) -> None:
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- lookup errors ---

class TradeNotFoundError(MarketError):
    def __init__(self, trade_id: str) -> None:
        self.trade_id = trade_id
        super().__init__("Trade not found", 404)


class CommunityNotFoundError(MarketError):
    def __init__(self, community_id: str) -> None:
        self.community_id = community_id
        super().__init__("Community not found", 404)


class MemberNotFoundError(MarketError):
    def __init__(self, member_id: str) -> None:
        self.member_id = member_id
        super().__init__("Member not found in community", 404)


# --- state / conflict errors ---

class InvalidTradeTransitionError(MarketError):
    def __init__(self, trade_id: str, action: str, status: str) -> None:
        self.trade_id = trade_id
        self.action = action
        self.status = status
        super().__init__(f"Trade cannot be {action} - not in pending status", 409)


class MemberAlreadyExistsError(MarketError):
    def __init__(self, member_id: str) -> None:
        self.member_id = member_id
        super().__init__("Member already exists in community", 409)


class SnapshotVersionConflictError(MarketError):
    def __init__(self, expected: int, actual: Optional[int] = None) -> None:
        self.expected = expected
        self.actual = actual
        found = "a newer write" if actual is None else f"version {actual}"
        super().__init__(
            f"Snapshot was modified concurrently (expected version {expected}, found {found})",
            409,
        )


# --- storage errors ---

class SnapshotStorageError(MarketError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 500)
