"""
Statement classification using LLM with structured output.
All classifier payload shapes are normalized here into one canonical
ClassifierOutput before they reach the aggregator.
"""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.exceptions import ResponseParseError
from core.logger import setup_logger
from core.schema import ClassifierOutput, SubscriptionItem
from llm.client import create_response_schema, get_client
from llm.prompts import build_system_prompt, build_user_message

logger = setup_logger(__name__)

# Defaults for the legacy {subscriptions, total_monthly, savings_tips} shape
LEGACY_FREQUENCY = "monthly"
LEGACY_CONFIDENCE = 1.0


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _as_insights(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ResponseParseError(
            f"Classifier field '{field}' must be a list of strings",
            details={"field": field, "type": type(value).__name__}
        )
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _validate_items(raw_items: Any, field: str, defaults: Dict[str, Any]) -> List[SubscriptionItem]:
    if not isinstance(raw_items, list):
        raise ResponseParseError(
            f"Classifier field '{field}' must be a list",
            details={"field": field, "type": type(raw_items).__name__}
        )

    items: List[SubscriptionItem] = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ResponseParseError(
                f"Classifier item #{idx} is not an object",
                details={"field": field, "index": idx}
            )
        data = {**defaults, **{k: v for k, v in raw.items() if v is not None}}
        try:
            items.append(SubscriptionItem(**data))
        except ValidationError as e:
            raise ResponseParseError(
                f"Classifier item #{idx} is malformed",
                details={"field": field, "index": idx, "errors": e.errors(include_url=False)}
            )
    return items


def normalize_classifier_payload(payload: Any) -> ClassifierOutput:
    """
    Convert any known classifier response shape into the canonical one.

    Canonical: {totalMonthly, totalYearly, subscriptionCount, items, insights}
    Legacy:    {subscriptions: [{name, amount, category}], total_monthly, savings_tips}

    Args:
        payload: Decoded JSON returned by the classifier

    Returns:
        ClassifierOutput with validated items

    Raises:
        ResponseParseError: If the payload matches no known shape or holds malformed items
    """
    if not isinstance(payload, dict):
        raise ResponseParseError(
            "Classifier response must be a JSON object",
            details={"type": type(payload).__name__}
        )

    if "items" in payload:
        items = _validate_items(payload["items"], "items", defaults={})
        return ClassifierOutput(
            items=items,
            insights=_as_insights(payload.get("insights"), "insights"),
            reported_total_monthly=_as_number(payload.get("totalMonthly")),
            reported_total_yearly=_as_number(payload.get("totalYearly")),
            reported_count=payload.get("subscriptionCount") if isinstance(payload.get("subscriptionCount"), int) else None,
        )

    if "subscriptions" in payload:
        logger.info("Classifier answered with the legacy 'subscriptions' shape, normalizing")
        items = _validate_items(
            payload["subscriptions"],
            "subscriptions",
            defaults={"frequency": LEGACY_FREQUENCY, "confidence": LEGACY_CONFIDENCE},
        )
        return ClassifierOutput(
            items=items,
            insights=_as_insights(payload.get("savings_tips"), "savings_tips"),
            reported_total_monthly=_as_number(payload.get("total_monthly")),
        )

    raise ResponseParseError(
        "Classifier response has no 'items' list",
        details={"keys": sorted(payload.keys())}
    )


def log_reported_total_mismatch(output: ClassifierOutput, total_monthly: float) -> None:
    """Warn when the classifier's own totals disagree with its item list."""
    reported = output.reported_total_monthly
    if reported is not None and abs(reported - total_monthly) > 0.01:
        logger.warning(
            f"Classifier reported monthly total {reported:.2f} but items sum to {total_monthly:.2f}; "
            f"using item-derived total"
        )
    if output.reported_count is not None and output.reported_count != len(output.items):
        logger.warning(
            f"Classifier reported {output.reported_count} subscriptions but returned {len(output.items)} items"
        )


def classify_statement(statement_text: str, temperature: float = 0.1) -> ClassifierOutput:
    """
    Classify statement text into subscription items using the LLM.

    Args:
        statement_text: Normalized and truncated statement text
        temperature: LLM temperature (0.0-1.0)

    Returns:
        Canonical classifier output

    Raises:
        ClassificationError: If the LLM call fails
        ResponseParseError: If the response does not match the schema
    """
    logger.info(f"Classifying statement ({len(statement_text)} chars)")

    client = get_client()
    llm_response = client.call_with_structured_output(
        system_prompt=build_system_prompt(),
        user_message=build_user_message(statement_text),
        response_schema=create_response_schema(),
        temperature=temperature,
    )

    output = normalize_classifier_payload(llm_response)
    logger.info(f"Classifier returned {len(output.items)} subscription(s)")
    return output
