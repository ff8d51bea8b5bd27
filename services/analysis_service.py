"""
Statement analysis service.
Runs the normalize -> classify -> aggregate pipeline for one session and
publishes the result only when every step succeeded.
"""
import asyncio
from typing import Optional

from core.aggregator import aggregate
from core.config import get_settings
from core.exceptions import AuthenticationRequiredError, ClassificationTimeout
from core.history import HistoryStore, get_history_store
from core.logger import setup_logger
from core.normalize import extract_statement_text, is_blank_statement, truncate_statement
from core.schema import AnalysisResult, ClassifierOutput
from core.session import Session
from llm.classify import classify_statement, log_reported_total_mismatch
from llm.prompts import EMPTY_STATEMENT_INSIGHT

logger = setup_logger(__name__)


class AnalysisService:
    """Service orchestrating one statement analysis per request."""

    def __init__(self, history_store: Optional[HistoryStore] = None):
        """Initialize analysis service."""
        self.settings = get_settings()
        self.history = history_store or get_history_store()

    def prepare_statement(
        self,
        raw_bytes: Optional[bytes],
        content_type: Optional[str],
        override_text: Optional[str] = None,
    ) -> str:
        """
        Normalize the upload into truncated statement text.

        Raises:
            UnsupportedFormatError: If the file type is not supported
        """
        text = extract_statement_text(raw_bytes, content_type, override_text)
        return truncate_statement(text, self.settings.max_statement_chars)

    async def classify(self, statement_text: str) -> ClassifierOutput:
        """
        Run the blocking classifier call in the thread pool, bounded by a timeout.

        Raises:
            ClassificationTimeout: If the classifier does not answer in time
        """
        loop = asyncio.get_running_loop()
        timeout = self.settings.classification_timeout
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, classify_statement, statement_text),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Classification exceeded {timeout}s")
            raise ClassificationTimeout(
                f"Classification did not finish within {timeout:.0f}s",
                details={"timeout": timeout}
            )

    async def analyze(
        self,
        session: Session,
        raw_bytes: Optional[bytes] = None,
        content_type: Optional[str] = None,
        override_text: Optional[str] = None,
    ) -> AnalysisResult:
        """
        Analyze one statement for the given session.

        A credit is spent and a history record written only after the
        classifier answered and the result was aggregated. History is written
        last, under the user who started the request; the credit is returned
        if that write fails. Blank statements short-circuit to a zero-item
        result with a guidance insight.

        Args:
            session: Authenticated session with credits
            raw_bytes: Uploaded file content
            content_type: Declared MIME type of the upload
            override_text: Literal statement text (sample data)

        Returns:
            Analysis result (a history record when classifier-backed)
        """
        session.ensure_can_analyze()
        owner = session.email
        session.begin_analysis()
        loop = asyncio.get_running_loop()
        try:
            # PDF extraction and SQLite writes block, keep them off the event loop
            statement_text = await loop.run_in_executor(
                None, self.prepare_statement, raw_bytes, content_type, override_text
            )

            if is_blank_statement(statement_text):
                logger.info("Blank statement received, returning empty result")
                return aggregate([], [EMPTY_STATEMENT_INSIGHT])

            output = await self.classify(statement_text)
            result = aggregate(output.items, output.insights)
            log_reported_total_mismatch(output, result.total_monthly)

            if session.email != owner:
                raise AuthenticationRequiredError(
                    "Session changed while the analysis was running",
                    details={"session_id": session.session_id}
                )
            remaining = session.consume_credit()
            try:
                record = await loop.run_in_executor(None, self.history.append, owner, result)
            except Exception:
                session.add_credits(1)
                raise
            logger.info(
                f"Analysis {record.id} completed: {record.subscription_count} subscription(s), "
                f"{record.total_monthly:.2f}/month, {remaining} credit(s) left"
            )
            return record

        except Exception as e:
            logger.error(f"Analysis failed for session {session.session_id}: {type(e).__name__}: {e}")
            raise

        finally:
            session.end_analysis()
