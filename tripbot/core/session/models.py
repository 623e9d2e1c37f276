from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ...types.session import Session
from ..errors import TripbotError
from ..wallet.provisioner import ProvisionResult


class SessionState(str, Enum):
    """Provisioning progress of a chat. ``completed`` is tracked separately."""

    UNINITIALIZED = "uninitialized"
    HAS_APP_ID = "has_app_id"
    HAS_WALLET = "has_wallet"

    @classmethod
    def of(cls, session: Optional[Session]) -> "SessionState":
        if session is None or not session.vault_app_id:
            return cls.UNINITIALIZED
        if not session.wallet_address:
            return cls.HAS_APP_ID
        return cls.HAS_WALLET


@dataclass
class ActivationResult:
    """What ``on_chat_activated`` did for a chat."""

    session: Session
    previous_state: SessionState
    registered_app_id: bool = False
    provisioned: Optional[ProvisionResult] = None
    added_to_index: bool = False
    warnings: List[TripbotError] = field(default_factory=list)

    @property
    def state(self) -> SessionState:
        return SessionState.of(self.session)
