"""Optional OpenAI based account classification."""

import json
from collections.abc import Iterable, Sequence
from typing import Any

import openai
import structlog

from simple_bookkeeping.config import get_settings
from simple_bookkeeping.imports.classifier import (
    AccountSuggestion,
    ImportRule,
    classify_with_rules,
)
from simple_bookkeeping.imports.csv_parser import TransactionType
from simple_bookkeeping.models import Account

logger = structlog.get_logger(__name__)

MIN_AI_CONFIDENCE = 0.7

SYSTEM_PROMPT = "You are an accounting expert specializing in Japanese bookkeeping standards."

PROMPT_TEMPLATE = """Given the following transaction description, suggest the most appropriate debit and credit accounts from the list below.

Transaction Description: "{description}"

Available Accounts:
{accounts}

Please respond in JSON format with the following structure:
{{
  "debit_account": "account code",
  "credit_account": "account code",
  "confidence": 0.0-1.0,
  "reason": "brief explanation"
}}

Common patterns for Japanese accounting:
- Income: Debit = Cash/Bank (普通預金), Credit = Revenue (売上高)
- Expense: Debit = Expense account, Credit = Cash/Bank (普通預金)
- Transfer: Between bank/cash accounts"""


class AIClassifier:
    """Ask a chat model for the debit/credit accounts of a bank row."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 200,
    ):
        settings = get_settings()
        if api_key is None and settings.openai_api_key is not None:
            api_key = settings.openai_api_key.get_secret_value()
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for AI classification")

        self._model = model or settings.openai_model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = openai.OpenAI(api_key=api_key)
        self._logger = logger.bind(client="openai", model=self._model)

    def _build_prompt(self, description: str, accounts: Sequence[Account]) -> str:
        account_list = "\n".join(f"{account.code} - {account.name}" for account in accounts)
        return PROMPT_TEMPLATE.format(description=description, accounts=account_list)

    def _parse_response(
        self, content: str, accounts: Sequence[Account]
    ) -> AccountSuggestion | None:
        result: dict[str, Any] = json.loads(content)
        by_code = {account.code: account for account in accounts}
        debit = by_code.get(str(result.get("debit_account")))
        credit = by_code.get(str(result.get("credit_account")))
        if debit is None or credit is None:
            self._logger.debug("unknown_account_codes", result=result)
            return None
        return AccountSuggestion(
            account_id=debit.id,
            contra_account_id=credit.id,
            confidence=float(result.get("confidence") or 0.5),
            reason=str(result.get("reason") or "AI classification"),
        )

    async def classify(
        self, description: str, accounts: Sequence[Account]
    ) -> AccountSuggestion | None:
        """Return the model's suggestion, or ``None`` if it is unusable.

        API and parsing failures are logged and yield ``None`` so the caller
        can fall back to rule based classification.
        """
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self._build_prompt(description, accounts)},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.APIError as e:
            self._logger.warning("ai_classification_failed", error=str(e))
            return None

        content = response.choices[0].message.content or ""
        try:
            suggestion = self._parse_response(content, accounts)
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            self._logger.warning("ai_response_unparseable", error=str(e))
            return None

        if suggestion is not None:
            self._logger.info("ai_classification", confidence=suggestion.confidence)
        return suggestion


async def classify_transaction(
    description: str,
    transaction_type: TransactionType | None,
    rules: Iterable[ImportRule],
    accounts: Sequence[Account],
    ai_classifier: AIClassifier | None = None,
) -> AccountSuggestion | None:
    """Prefer a confident AI suggestion, else fall back to rules and keywords."""
    if ai_classifier is not None:
        suggestion = await ai_classifier.classify(description, accounts)
        if suggestion is not None and suggestion.confidence >= MIN_AI_CONFIDENCE:
            return suggestion
    return classify_with_rules(description, transaction_type, rules, accounts)


def build_ai_classifier() -> AIClassifier | None:
    """Classifier from settings, or ``None`` when AI classification is off."""
    settings = get_settings()
    if not settings.ai_classification_enabled or settings.openai_api_key is None:
        return None
    return AIClassifier()
