"""
Unit tests for the analysis pipeline orchestration.
"""
import asyncio
import sqlite3
import threading
import time

import pytest

import services.analysis_service as analysis_module
from core.db import Database
from core.exceptions import (
    AnalysisInProgressError,
    AuthenticationRequiredError,
    ClassificationError,
    ClassificationTimeout,
    InsufficientCreditsError,
    ResponseParseError,
    UnsupportedFormatError,
)
from core.history import HistoryStore
from core.normalize import SAMPLE_STATEMENT
from core.schema import ClassifierOutput
from core.session import Session
from llm.prompts import EMPTY_STATEMENT_INSIGHT
from services.analysis_service import AnalysisService

EMAIL = "ana@example.com"


@pytest.fixture
def service(tmp_path):
    return AnalysisService(history_store=HistoryStore(Database(str(tmp_path / "service.db"))))


@pytest.fixture
def session():
    s = Session("s1", initial_credits=1)
    s.login(EMAIL)
    return s


@pytest.fixture
def classifier(monkeypatch, make_item):
    """Scriptable stand-in for the LLM classifier."""
    state = {"texts": [], "error": None, "delay": 0}

    def fake_classify(text):
        state["texts"].append(text)
        if state["delay"]:
            time.sleep(state["delay"])
        if state["error"]:
            raise state["error"]
        return ClassifierOutput(
            items=[
                make_item(name="Netflix", amount=55.90, category="Streaming"),
                make_item(name="Domain", amount=120, frequency="yearly", category="Software"),
            ],
            insights=["Streaming é sua maior despesa recorrente."],
            reported_total_monthly=999.0,
        )

    monkeypatch.setattr(analysis_module, "classify_statement", fake_classify)
    return state


def run(coro):
    return asyncio.run(coro)


def test_successful_analysis(service, session, classifier):
    result = run(service.analyze(session, b"DATA,VALOR\nNETFLIX,-55.90", "text/csv"))

    assert result.subscription_count == 2
    assert result.total_monthly == 65.90
    assert result.total_yearly == round(55.90 * 12 + 120, 2)
    assert result.id is not None
    assert result.created_at is not None
    assert session.credits == 0
    assert not session.analysis_in_flight
    assert [r.id for r in service.history.load(EMAIL)] == [result.id]


def test_classifier_totals_are_ignored(service, session, classifier):
    result = run(service.analyze(session, override_text=SAMPLE_STATEMENT))
    assert result.total_monthly != 999.0


def test_sample_text_is_sent(service, session, classifier):
    run(service.analyze(session, override_text=SAMPLE_STATEMENT))
    assert classifier["texts"] == [SAMPLE_STATEMENT]


def test_statement_is_truncated(service, session, classifier):
    service.settings = service.settings.model_copy(update={"max_statement_chars": 1000})

    run(service.analyze(session, "x".encode() * 5000, "text/plain"))
    assert len(classifier["texts"][0]) == 1000


def test_blank_statement_yields_guidance(service, session, classifier):
    result = run(service.analyze(session, b"   \n", "text/csv"))

    assert result.subscription_count == 0
    assert result.total_monthly == 0
    assert result.insights == [EMPTY_STATEMENT_INSIGHT]
    assert classifier["texts"] == []
    assert session.credits == 1
    assert service.history.load(EMAIL) == []


@pytest.mark.parametrize("error", [
    ResponseParseError("Classifier response has no 'items' list"),
    ClassificationError("quota exceeded"),
])
def test_failure_leaves_state_untouched(service, session, classifier, error):
    classifier["error"] = error

    with pytest.raises(type(error)):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    assert session.credits == 1
    assert not session.analysis_in_flight
    assert service.history.load(EMAIL) == []


def test_timeout(service, session, classifier):
    service.settings = service.settings.model_copy(update={"classification_timeout": 0.05})
    classifier["delay"] = 0.5

    with pytest.raises(ClassificationTimeout):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    assert session.credits == 1
    assert not session.analysis_in_flight


def test_unsupported_format(service, session, classifier):
    with pytest.raises(UnsupportedFormatError):
        run(service.analyze(session, b"\x89PNG", "image/png"))

    assert session.credits == 1
    assert classifier["texts"] == []


def test_second_submission_is_rejected(service, session, classifier):
    session.begin_analysis()

    with pytest.raises(AnalysisInProgressError):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    assert session.analysis_in_flight
    assert classifier["texts"] == []


def test_paywall(service, session, classifier):
    run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    with pytest.raises(InsufficientCreditsError):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))
    assert len(classifier["texts"]) == 1


def test_logout_during_classification_publishes_nothing(service, session, monkeypatch, make_item):
    """A session that logs out mid-request gets an error and no history is written anywhere."""
    def classify_then_logout(text):
        session.logout()
        return ClassifierOutput(items=[make_item()])

    monkeypatch.setattr(analysis_module, "classify_statement", classify_then_logout)

    with pytest.raises(AuthenticationRequiredError):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    assert session.credits == 1
    assert not session.analysis_in_flight
    assert service.history.load(EMAIL) == []
    assert service.history.load(None) == []


def test_user_switch_during_classification_publishes_nothing(service, session, monkeypatch, make_item):
    """Results are never filed under a different user than the one who asked."""
    def classify_then_switch(text):
        session.login("bruno@example.com")
        return ClassifierOutput(items=[make_item()])

    monkeypatch.setattr(analysis_module, "classify_statement", classify_then_switch)

    with pytest.raises(AuthenticationRequiredError):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    assert session.credits == 1
    assert service.history.load(EMAIL) == []
    assert service.history.load("bruno@example.com") == []


def test_history_write_failure_returns_credit(service, session, classifier, monkeypatch):
    def broken_append(owner, result):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(service.history, "append", broken_append)

    with pytest.raises(sqlite3.OperationalError):
        run(service.analyze(session, override_text=SAMPLE_STATEMENT))

    assert session.credits == 1
    assert not session.analysis_in_flight


def test_blocking_steps_run_off_the_event_loop(service, session, classifier, monkeypatch):
    """Statement extraction and the history write happen in worker threads."""
    threads = {}
    original_prepare = service.prepare_statement
    original_append = service.history.append

    def tracking_prepare(*args):
        threads["prepare"] = threading.get_ident()
        return original_prepare(*args)

    def tracking_append(owner, result):
        threads["append"] = threading.get_ident()
        return original_append(owner, result)

    monkeypatch.setattr(service, "prepare_statement", tracking_prepare)
    monkeypatch.setattr(service.history, "append", tracking_append)

    async def analyze_and_report_loop_thread():
        await service.analyze(session, override_text=SAMPLE_STATEMENT)
        return threading.get_ident()

    loop_thread = run(analyze_and_report_loop_thread())

    assert threads["prepare"] != loop_thread
    assert threads["append"] != loop_thread
