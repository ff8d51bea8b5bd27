"""
Session-scoped credit/paywall state.

A session is anonymous until login; once authenticated its state follows the
credit balance. All transitions go through explicit methods so the state can
be serialized and checked at any time.
"""
import threading
import uuid
from typing import Dict, Optional, Set

from core.exceptions import (
    AnalysisInProgressError,
    AuthenticationRequiredError,
    DataNotFoundError,
    InsufficientCreditsError,
    ValidationError,
)
from core.logger import setup_logger
from core.schema import SessionSnapshot, SessionState

logger = setup_logger(__name__)


class Session:
    """Mutable per-user context: auth flag, credit balance, in-flight guard."""

    def __init__(self, session_id: str, initial_credits: int):
        self.session_id = session_id
        self.email: Optional[str] = None
        self.credits = initial_credits
        self.analysis_in_flight = False
        self.credited_billings: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        if self.email is None:
            return SessionState.ANONYMOUS
        if self.credits > 0:
            return SessionState.AUTHENTICATED_WITH_CREDITS
        return SessionState.AUTHENTICATED_NO_CREDITS

    @property
    def is_authenticated(self) -> bool:
        return self.email is not None

    def login(self, email: str) -> SessionState:
        """Simulated sign-in."""
        self.email = email
        logger.info(f"Session {self.session_id} logged in")
        return self.state

    def logout(self) -> SessionState:
        self.email = None
        logger.info(f"Session {self.session_id} logged out")
        return self.state

    def require_authenticated(self) -> None:
        if not self.is_authenticated:
            raise AuthenticationRequiredError("Login required")

    def ensure_can_analyze(self) -> None:
        """
        Check the paywall gate before an analysis starts.

        Raises:
            AuthenticationRequiredError: If not logged in
            InsufficientCreditsError: If the credit balance is zero
        """
        self.require_authenticated()
        if self.credits <= 0:
            raise InsufficientCreditsError(
                "No analysis credits left. Buy more credits to continue.",
                details={"credits": self.credits}
            )

    def consume_credit(self) -> int:
        """Spend one credit after a successful analysis."""
        self.ensure_can_analyze()
        self.credits -= 1
        return self.credits

    def add_credits(self, amount: int) -> int:
        if amount <= 0:
            raise ValidationError("Credit amount must be positive", details={"amount": amount})
        self.credits += amount
        logger.info(f"Session {self.session_id} received {amount} credit(s), balance {self.credits}")
        return self.credits

    def begin_analysis(self) -> None:
        """
        Mark an analysis as in flight.

        Raises:
            AnalysisInProgressError: If one is already pending
        """
        with self._lock:
            if self.analysis_in_flight:
                raise AnalysisInProgressError("An analysis is already running for this session")
            self.analysis_in_flight = True

    def end_analysis(self) -> None:
        with self._lock:
            self.analysis_in_flight = False

    def to_dict(self) -> dict:
        return self.snapshot().model_dump(by_alias=True, mode="json")

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            state=self.state,
            email=self.email,
            credits=self.credits,
            analysis_in_flight=self.analysis_in_flight,
        )


class SessionRegistry:
    """In-memory sessions by id (use Redis/DB in production)."""

    def __init__(self, initial_credits: int):
        self.initial_credits = initial_credits
        self._sessions: Dict[str, Session] = {}

    def create(self) -> Session:
        session = Session(str(uuid.uuid4()), self.initial_credits)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: Optional[str]) -> Session:
        if not session_id or session_id not in self._sessions:
            raise DataNotFoundError("Session not found", details={"session_id": session_id})
        return self._sessions[session_id]

    def get_or_create(self, session_id: Optional[str]) -> Session:
        if session_id and session_id in self._sessions:
            return self._sessions[session_id]
        return self.create()
