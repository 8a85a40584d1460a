"""
Request Gateway - Key validation, metered keyword processing and key minting.

Keyword processing runs in three phases:
1. authorize in a short session
2. generate the allowed prefix sequentially, with no transaction open
3. settle and append the usage logs in a second short session

Generation failures are billed; if settlement itself fails the results are
still returned and the shortfall is logged for reconciliation.
"""

import time

from structlog import get_logger

from alchemist.config import Settings
from alchemist.db.session import Database
from alchemist.exceptions import ContentGenerationError, InvalidKeyError, KeySuspendedError
from alchemist.models.api import (
    AttemptStatus,
    PartialCreditsResponse,
    Plan,
    ProcessedKeyword,
    ProcessKeywordsRequest,
    ProcessKeywordsResponse,
)
from alchemist.models.domain import (
    AccessKeyData,
    Authorization,
    KeywordAttemptRecord,
    UsageRecord,
)
from alchemist.observability.logging import log_context
from alchemist.observability.metrics import metrics
from alchemist.observability.tracing import add_span_attributes, get_tracer
from alchemist.services.content_generator import ContentGenerator
from alchemist.services.credit_ledger import CreditLedger
from alchemist.services.key_generator import KeyGenerator
from alchemist.services.key_store import KeyStore

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class RequestGateway:
    """Entry point for the metered operations behind the HTTP routes."""

    def __init__(
        self,
        database: Database,
        generator: ContentGenerator,
        key_generator: KeyGenerator,
        settings: Settings,
    ) -> None:
        self.database = database
        self.generator = generator
        self.key_generator = key_generator
        self.settings = settings

    async def validate_key(self, key_id: str) -> AccessKeyData:
        """
        Look up an access key for the client.

        Raises:
            InvalidKeyError: If no such key exists
            KeySuspendedError: If the key exists but is not active
        """
        async with self.database.session() as session:
            key = await KeyStore(session).get_any(key_id)

        if key is None:
            raise InvalidKeyError(key_id)
        if not key.is_active:
            raise KeySuspendedError(key_id, key.status.value)
        return key

    async def process_keywords(
        self, request: ProcessKeywordsRequest
    ) -> ProcessKeywordsResponse | PartialCreditsResponse:
        """
        Generate articles for the keywords the key can pay for.

        Raises:
            InvalidKeyError: If the key does not exist
            KeySuspendedError: If the key is not active
            StorageUnavailableError: If authorization could not read the key
        """
        key_id = request.access_key
        keywords = request.keywords

        with log_context(key_id=key_id):
            authorization = await self._authorize(key_id, len(keywords))

            if authorization.is_partial and not request.allow_partial:
                logger.info(
                    "keyword_batch_exceeds_credits",
                    requested=authorization.requested,
                    remaining=authorization.remaining,
                )
                return PartialCreditsResponse(
                    message=(
                        f"Insufficient credits. {authorization.remaining} credits remaining."
                    ),
                    allowed_keywords=keywords[: authorization.allowed],
                    rejected_keywords=keywords[authorization.allowed :],
                    credits_remaining=authorization.remaining,
                )

            allowed = keywords[: authorization.allowed]
            rejected = keywords[authorization.allowed :]

            processed, attempts = await self._generate_batch(key_id, allowed, request.output_format)

            credits_remaining, settlement_pending = await self._settle(
                authorization, request, processed, attempts
            )

            return ProcessKeywordsResponse(
                processed=processed,
                rejected_keywords=rejected,
                credits_charged=len(processed),
                credits_remaining=credits_remaining,
                settlement_pending=settlement_pending,
            )

    async def create_access_key(self, plan: Plan, email: str | None = None) -> AccessKeyData:
        """
        Mint a new funded access key for a plan (administrative path).

        Raises:
            UnknownPlanError: If the plan is not in the catalog
            GenerationExhaustedError: If no unused key id was found
        """
        credits = self.key_generator.credits_for_plan(plan.value)
        return await self.create_key_with_credits(plan, credits, email)

    async def create_key_with_credits(
        self, plan: Plan, credits: int, email: str | None = None
    ) -> AccessKeyData:
        """Mint a key with an explicit credit amount."""
        async with self.database.session() as session:
            store = KeyStore(session)
            key_id = await self.key_generator.generate_unique(store)
            key = await store.create(key_id, plan, credits, email)

        metrics.record_key_minted(plan.value, "admin")
        return key

    # ========================================================================
    # Phases
    # ========================================================================

    async def _authorize(self, key_id: str, requested: int) -> Authorization:
        async with self.database.session() as session:
            store = KeyStore(session)
            try:
                return await CreditLedger(store).authorize(key_id, requested)
            except InvalidKeyError:
                key = await store.get_any(key_id)
                if key is not None and not key.is_active:
                    raise KeySuspendedError(key_id, key.status.value) from None
                raise

    async def _generate_batch(
        self, key_id: str, keywords: list[str], output_format: str
    ) -> tuple[list[ProcessedKeyword], list[KeywordAttemptRecord]]:
        """Attempt each keyword in order; failures are recorded, never dropped."""
        processed: list[ProcessedKeyword] = []
        attempts: list[KeywordAttemptRecord] = []
        cost = self.settings.estimated_cost_per_keyword_usd

        for keyword in keywords:
            started = time.perf_counter()
            with tracer.start_as_current_span("gateway.generate_keyword") as span:
                add_span_attributes(span, keyword=keyword)
                try:
                    article = await self.generator.generate(keyword)
                except ContentGenerationError as exc:
                    error_message = exc.message
                except Exception as exc:
                    logger.exception("generation_unexpected_error", keyword=keyword)
                    error_message = f"Unexpected generation error: {type(exc).__name__}"
                else:
                    error_message = None

            elapsed = time.perf_counter() - started
            elapsed_ms = int(elapsed * 1000)
            metrics.record_generation(error_message is None, elapsed)

            if error_message is None:
                processed.append(
                    ProcessedKeyword(
                        keyword=keyword,
                        status=AttemptStatus.SUCCESS,
                        title=article.title,
                        tldr=article.tldr,
                        body=article.body,
                        approach=article.approach,
                        word_count=article.word_count,
                        linking_suggestions=list(article.linking_suggestions) or None,
                    )
                )
                attempts.append(
                    KeywordAttemptRecord(
                        access_key_id=key_id,
                        keyword=keyword,
                        approach=article.approach,
                        status=AttemptStatus.SUCCESS,
                        word_count=article.word_count,
                        processing_time_ms=elapsed_ms,
                        output_format=output_format,
                        estimated_cost_usd=cost,
                    )
                )
            else:
                logger.warning("keyword_generation_failed", keyword=keyword, error=error_message)
                processed.append(
                    ProcessedKeyword(
                        keyword=keyword,
                        status=AttemptStatus.FAILED,
                        error_message=error_message,
                    )
                )
                attempts.append(
                    KeywordAttemptRecord(
                        access_key_id=key_id,
                        keyword=keyword,
                        approach=self.settings.generation_model,
                        status=AttemptStatus.FAILED,
                        error_message=error_message,
                        processing_time_ms=elapsed_ms,
                        output_format=output_format,
                        estimated_cost_usd=cost,
                    )
                )

        return processed, attempts

    async def _settle(
        self,
        authorization: Authorization,
        request: ProcessKeywordsRequest,
        processed: list[ProcessedKeyword],
        attempts: list[KeywordAttemptRecord],
    ) -> tuple[int, bool]:
        """Debit consumed credits and append logs. Returns (remaining, settlement_pending)."""
        consumed = len(processed)
        if consumed == 0:
            return authorization.remaining, False

        async with self.database.session() as session:
            store = KeyStore(session)
            try:
                remaining = await CreditLedger(store).settle(authorization, consumed)
            except Exception as exc:
                metrics.record_unbilled_credits(consumed)
                logger.error(
                    "credit_settlement_shortfall",
                    key_id=authorization.key_id,
                    unbilled_credits=consumed,
                    keywords=[p.keyword for p in processed],
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                return max(authorization.remaining - consumed, 0), True

            try:
                for attempt in attempts:
                    await store.append_keyword_attempt(attempt, commit=False)
                await store.append_usage(
                    UsageRecord(
                        access_key_id=authorization.key_id,
                        keywords_requested=len(request.keywords),
                        keywords_processed=consumed,
                        credits_deducted=consumed,
                        output_format=request.output_format,
                        estimated_cost_usd=consumed * self.settings.estimated_cost_per_keyword_usd,
                    ),
                    commit=False,
                )
                await store.commit()
            except Exception as exc:
                await store.rollback()
                logger.error(
                    "usage_log_write_failed",
                    key_id=authorization.key_id,
                    attempts=len(attempts),
                    error=str(exc),
                )

        return remaining, False
