"""Summary: Cache-first search-intent classification of query strings.

Importance: Enriches reports with intent, topic, and funnel stage while keeping model calls to a minimum.
Alternatives: Use a keyword rule table, or classify every query on every request.
"""

from __future__ import annotations

import enum
import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol, Sequence

from gscreports.ai import AiProvider, is_rate_limit_error
from gscreports.clock import utc_now
from gscreports.models import (
    ANALYSIS_ERROR,
    FUNNEL_STAGES,
    INCOMPLETE_RESPONSE,
    INTENT_VALUES,
    RATE_LIMIT_EXCEEDED,
    UNKNOWN,
    IntentRecord,
    default_intent,
)
from gscreports.retry import RetriesExhausted, RetryPolicy, retry_call


logger = logging.getLogger(__name__)

SINGLE_PROMPT = "single_prompt"
PER_ITEM = "per_item"

_REQUIRED_FIELDS = ("intent", "category", "funnel_stage", "main_keywords")
_FENCE = re.compile(r"```[\w-]*\s*(.*?)\s*```", re.DOTALL)
_UNSET: Any = object()


class IntentCache(Protocol):
    """Summary: Storage seen by the classifier, keyed by query text only.

    Importance: Lets tests swap in a dict while production uses SQLite.
    Alternatives: Pass the SqliteStore directly.
    """

    def lookup(self, queries: Sequence[str]) -> dict[str, IntentRecord]: ...

    def save(self, records: Sequence[IntentRecord]) -> None: ...


class BatchState(enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    RATE_LIMIT_EXHAUSTED = "rate_limit_exhausted"
    NON_RETRIABLE_ERROR = "non_retriable_error"


@dataclass(frozen=True)
class BatchOutcome:
    """Summary: Terminal state of one request plus a record for every query it covered.

    Importance: Failed batches still carry complete, default-filled results.
    Alternatives: Return partial arrays and patch holes later.
    """

    state: BatchState
    records: tuple[IntentRecord, ...]


@dataclass(frozen=True)
class Parsed:
    records: tuple[IntentRecord, ...]


@dataclass(frozen=True)
class Invalid:
    reason: str


@dataclass(frozen=True)
class ClassificationResult:
    """Summary: Classification output with cache bookkeeping.

    Importance: ``results`` lines up one-to-one with the input queries.
    Alternatives: Return only the list and let callers recount.
    """

    results: list[IntentRecord]
    cached: int
    analyzed: int
    remaining: int


@dataclass
class IntentClassifier:
    """Summary: Classifies queries using the intent cache first and the model second.

    Importance: Never raises; failures surface as Unknown records with an error marker.
    Alternatives: Propagate provider errors and fail report generation.
    """

    provider: AiProvider
    cache: IntentCache
    retry_policy: RetryPolicy = RetryPolicy()
    batch_size: int = 1
    batch_delay_seconds: float = 3.0
    default_limit: int | None = 10
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], datetime] = utc_now

    def classify(
        self,
        queries: Sequence[str],
        mode: str = PER_ITEM,
        limit: int | None = _UNSET,
        force: bool = False,
    ) -> list[IntentRecord]:
        """Summary: Return one intent record per input query, in input order.

        Importance: Duplicates share a single analysis.
        Alternatives: Return a mapping keyed by query.
        """

        return self.analyze(queries, mode=mode, limit=limit, force=force).results

    def analyze(
        self,
        queries: Sequence[str],
        mode: str = PER_ITEM,
        limit: int | None = _UNSET,
        force: bool = False,
    ) -> ClassificationResult:
        """Summary: Classify queries and report how many came from cache or the model.

        Importance: ``limit=None`` analyzes every pending query; queries past the
        limit merge as cached-or-default and count as ``remaining``.
        Alternatives: Reject requests larger than the limit.
        """

        if mode not in (SINGLE_PROMPT, PER_ITEM):
            raise ValueError(f"Unknown classification mode: {mode}")
        if not queries:
            return ClassificationResult(results=[], cached=0, analyzed=0, remaining=0)
        if limit is _UNSET:
            limit = self.default_limit

        unique = list(dict.fromkeys(queries))
        existing = self._lookup(unique)
        to_analyze = list(unique) if force else [query for query in unique if query not in existing]
        selected = to_analyze if limit is None else to_analyze[: max(limit, 0)]
        remaining = len(to_analyze) - len(selected)
        logger.info(
            "Classifying %s unique queries: %s cached, %s to analyze, %s deferred.",
            len(unique),
            len(existing),
            len(selected),
            remaining,
        )

        fresh: dict[str, IntentRecord] = {}
        if selected:
            if mode == SINGLE_PROMPT:
                outcomes = [self._run_batch_prompt(selected)]
            else:
                outcomes = self._run_per_item(selected)
            analyzed_at = self.clock()
            for outcome in outcomes:
                for record in outcome.records:
                    if force and record.error and record.query in existing:
                        continue
                    fresh[record.query] = record.stamped(analyzed_at)
            self._persist(list(fresh.values()))

        results: list[IntentRecord] = []
        for query in queries:
            if query in fresh:
                results.append(fresh[query])
            elif query in existing:
                results.append(existing[query])
            else:
                results.append(default_intent(query))
        cached = sum(1 for query in unique if query in existing and query not in fresh)
        return ClassificationResult(
            results=results,
            cached=cached,
            analyzed=len(fresh),
            remaining=remaining,
        )

    def _lookup(self, queries: list[str]) -> dict[str, IntentRecord]:
        try:
            return self.cache.lookup(queries)
        except Exception:
            logger.exception("Intent cache lookup failed; treating all queries as uncached.")
            return {}

    def _persist(self, records: list[IntentRecord]) -> None:
        if not records:
            return
        try:
            self.cache.save(records)
        except Exception:
            logger.exception("Failed to persist %s intent records.", len(records))

    def _run_batch_prompt(self, queries: list[str]) -> BatchOutcome:
        """Summary: Classify every query with one array-returning prompt.

        Importance: One request for the visible rows keeps quota use low.
        Alternatives: Always classify one query per request.
        """

        prompt = build_batch_prompt(queries)
        outcome = self._request(prompt, "intent_batch", queries)
        if isinstance(outcome, BatchOutcome):
            return outcome
        parsed = parse_batch_response(outcome, queries)
        if isinstance(parsed, Invalid):
            logger.error("Discarding batch response for %s queries: %s", len(queries), parsed.reason)
            return _failed(BatchState.NON_RETRIABLE_ERROR, queries, ANALYSIS_ERROR)
        logger.info("Batch analysis succeeded for %s queries.", len(queries))
        return BatchOutcome(BatchState.SUCCESS, parsed.records)

    def _run_per_item(self, queries: list[str]) -> list[BatchOutcome]:
        """Summary: Classify queries one prompt each, in small concurrent batches.

        Importance: The inter-batch delay keeps sustained traffic under the provider quota.
        Alternatives: Fire every request at once.
        """

        size = max(self.batch_size, 1)
        outcomes: list[BatchOutcome] = []
        for start in range(0, len(queries), size):
            if start:
                self.sleep(self.batch_delay_seconds)
            batch = queries[start:start + size]
            logger.info("Analyzing batch of %s queries.", len(batch))
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                outcomes.extend(executor.map(self._run_single_query, batch))
        return outcomes

    def _run_single_query(self, query: str) -> BatchOutcome:
        outcome = self._request(build_single_prompt(query), "intent_single", [query])
        if isinstance(outcome, BatchOutcome):
            return outcome
        parsed = parse_single_response(outcome, query)
        if isinstance(parsed, Invalid):
            logger.error("Discarding response for query %r: %s", query, parsed.reason)
            return _failed(BatchState.NON_RETRIABLE_ERROR, [query], ANALYSIS_ERROR)
        return BatchOutcome(BatchState.SUCCESS, parsed.records)

    def _request(self, prompt: str, purpose: str, queries: list[str]) -> str | BatchOutcome:
        """Summary: Call the provider under the retry policy.

        Importance: Returns the raw text, or a terminal failed outcome for the covered queries.
        Alternatives: Raise and let the caller build the failure.
        """

        def _call() -> str:
            text, latency_ms = self.provider.generate_text(prompt, purpose)
            logger.debug("%s responded in %sms.", purpose, latency_ms)
            return text

        try:
            return retry_call(
                _call,
                self.retry_policy,
                should_retry=is_rate_limit_error,
                sleep=self.sleep,
                label=f"{purpose} for {len(queries)} queries",
            )
        except RetriesExhausted as exc:
            logger.error(
                "Rate limit persisted after %s attempts for %s queries.", exc.attempts, len(queries)
            )
            return _failed(BatchState.RATE_LIMIT_EXHAUSTED, queries, RATE_LIMIT_EXCEEDED)
        except Exception as exc:
            logger.error("Non-retriable analysis error for %s queries: %s", len(queries), exc)
            return _failed(BatchState.NON_RETRIABLE_ERROR, queries, ANALYSIS_ERROR)


def _failed(state: BatchState, queries: Sequence[str], error: str) -> BatchOutcome:
    return BatchOutcome(state, tuple(default_intent(query, error) for query in queries))


def build_batch_prompt(queries: Sequence[str]) -> str:
    """Summary: Prompt asking for a JSON array with one analysis per query."""

    return (
        "You are an expert SEO analyst specializing in search intent and query classification.\n"
        "Analyze the user intent, category, funnel stage, and main keywords for each search "
        "query in the following JSON array:\n"
        f"{json.dumps(list(queries), ensure_ascii=False)}\n\n"
        "Return the analysis as a JSON array where each object has the following structure:\n"
        f"{_OBJECT_SHAPE}\n"
        f"{_VALUE_RULES}\n"
        "Output ONLY the JSON array. Do not include any introductory text or markdown formatting."
    )


def build_single_prompt(query: str) -> str:
    return (
        "You are an expert SEO analyst specializing in search intent and query classification.\n"
        "Analyze the user intent, category, funnel stage, and main keywords for this search "
        f"query: {json.dumps(query, ensure_ascii=False)}\n\n"
        "Return a single JSON object with the following structure:\n"
        f"{_OBJECT_SHAPE}\n"
        f"{_VALUE_RULES}\n"
        "Output ONLY the JSON object. Do not wrap it in an array or markdown formatting."
    )


_OBJECT_SHAPE = (
    "{\n"
    '  "query": "<original_query>",\n'
    f'  "intent": "<{" | ".join(INTENT_VALUES)}>",\n'
    "  \"category\": \"<Brief topic description, e.g., 'Software Review', 'Travel Guide'>\",\n"
    f'  "funnel_stage": "<{" | ".join(FUNNEL_STAGES)}>",\n'
    '  "main_keywords": ["<keyword1>", "<keyword2>"]\n'
    "}"
)
_VALUE_RULES = (
    "Ensure the 'intent' and 'funnel_stage' values are ONLY from the provided options.\n"
    'If unsure about any field, use "Unknown" or an empty array for keywords.'
)


def strip_code_fence(text: str) -> str:
    """Summary: Remove markdown code fences around model output.

    Importance: Models often wrap JSON in ```json blocks despite instructions.
    Alternatives: Ask the model for a JSON response MIME type only.
    """

    match = _FENCE.search(text)
    return match.group(1).strip() if match else text.strip()


def parse_batch_response(text: str, requested: Sequence[str]) -> Parsed | Invalid:
    """Summary: Validate an array response against the requested queries.

    Importance: Unrequested queries are ignored; requested queries that are
    missing or incomplete get a default record tagged IncompleteResponse.
    Alternatives: Trust the array order to match the request order.
    """

    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        return Invalid(f"response is not valid JSON ({exc.msg})")
    if not isinstance(data, list):
        return Invalid(f"expected a JSON array, got {type(data).__name__}")

    wanted = set(requested)
    found: dict[str, IntentRecord] = {}
    for item in data:
        if not isinstance(item, dict):
            continue
        query = item.get("query")
        if not isinstance(query, str) or query not in wanted:
            logger.debug("Ignoring unrequested query in response: %r", query)
            continue
        found.setdefault(query, _record_from_item(query, item))
    return Parsed(
        tuple(found.get(query) or default_intent(query, INCOMPLETE_RESPONSE) for query in requested)
    )


def parse_single_response(text: str, query: str) -> Parsed | Invalid:
    """Summary: Validate a single-object response for one query."""

    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        return Invalid(f"response is not valid JSON ({exc.msg})")
    if not isinstance(data, dict):
        return Invalid(f"expected a JSON object, got {type(data).__name__}")
    return Parsed((_record_from_item(query, data),))


def _record_from_item(query: str, item: dict[str, Any]) -> IntentRecord:
    if any(name not in item or item[name] is None for name in _REQUIRED_FIELDS):
        return default_intent(query, INCOMPLETE_RESPONSE)
    keywords = item["main_keywords"]
    if not isinstance(keywords, list):
        keywords = []
    category = item["category"]
    return IntentRecord(
        query=query,
        intent=_choice(item["intent"], INTENT_VALUES),
        category=category.strip() if isinstance(category, str) and category.strip() else UNKNOWN,
        funnel_stage=_choice(item["funnel_stage"], FUNNEL_STAGES),
        main_keywords=tuple(str(word).strip() for word in keywords if str(word).strip()),
    )


def _choice(value: Any, allowed: Sequence[str]) -> str:
    if not isinstance(value, str):
        return UNKNOWN
    lookup = {option.lower(): option for option in allowed}
    return lookup.get(value.strip().lower(), UNKNOWN)
