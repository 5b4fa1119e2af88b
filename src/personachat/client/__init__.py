from .api_client import ApiError, PersonaChatClient
from .controller import ChatController, SendInProgress, SendOutcome, SendState
from .identity import Identity, IdentityState, get_identity_state
from .rate_governor import RateDecision, RateGovernor, RateGovernorState
from .session_store import SessionStore

__all__ = [
    "ApiError",
    "PersonaChatClient",
    "ChatController",
    "SendInProgress",
    "SendOutcome",
    "SendState",
    "Identity",
    "IdentityState",
    "get_identity_state",
    "RateDecision",
    "RateGovernor",
    "RateGovernorState",
    "SessionStore",
]
