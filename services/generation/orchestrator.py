"""Generation orchestrator: the try-on session state machine.

The orchestrator owns one `GenerationSession` and moves it through
idle -> generating -> succeeded | failed. Every `generate()` call is tagged
with a fresh request id; an outcome is committed only if its id still
matches the session when the backend answers, so a superseded request can
never overwrite a newer one. Input changes and `reset()` clear the id,
which invalidates anything still in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional
from uuid import uuid4

from dal.generation_dal import GenerationDAL
from models.generation_models import (
    ClassifiedError,
    ErrorKind,
    GarmentCategory,
    GatewayResult,
    GenerationPhase,
    GenerationSession,
    GenerationSuccess,
    ModelSelector,
    QualityTier,
)
from models.generation_record import GenerationRecord
from services.credits.credit_ledger import CreditLedger, CreditLedgerError
from services.generation.classification import (
    UNREADABLE_IMAGE_MESSAGE,
    UNSUPPORTED_OPTION_MESSAGE,
    classified_error,
)
from services.generation.gateway import GenerationGateway
from services.generation.policy import CreditCostTable
from services.generation.request_builder import GenerationInputError, GenerationRequestBuilder
from services.image_normalizer import ImageEncodeError, ImageReadError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 420.0

SessionListener = Callable[[GenerationSession], None]


class GenerationOrchestrator:
    """Drive one try-on session from image selection to a settled outcome.

    Args:
        builder: Builds requests (and encodes images) for dispatch.
        gateway: Dispatches requests with retry and classification.
        credits: Optional credit ledger used as the precheck oracle and
            refreshed after each dispatched generation. Without a ledger the
            local precheck is skipped and the backend check alone applies.
        cost_table: Credit costs per quality tier and model.
        history: Optional DAL recording each committed outcome.
        timeout_s: Upper bound on building plus dispatching one request.
    """

    def __init__(
        self,
        builder: GenerationRequestBuilder,
        gateway: GenerationGateway,
        credits: Optional[CreditLedger] = None,
        *,
        cost_table: Optional[CreditCostTable] = None,
        history: Optional[GenerationDAL] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        if builder is None or gateway is None:
            raise ValueError("A request builder and a gateway are required.")
        self.builder = builder
        self.gateway = gateway
        self.credits = credits
        self.cost_table = cost_table or CreditCostTable()
        self.history = history
        self.timeout_s = timeout_s or DEFAULT_TIMEOUT_S
        self._session = GenerationSession()
        self._listeners: List[SessionListener] = []

    @property
    def session(self) -> GenerationSession:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register `listener` for every state change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_person_image(self, image_ref: Optional[str]) -> GenerationSession:
        """Select a new person image; any previous result no longer applies."""
        return self._commit(self._inputs_changed(person_image_ref=image_ref or None))

    def set_garment_image(self, image_ref: Optional[str]) -> GenerationSession:
        """Select a new garment image; any previous result no longer applies."""
        return self._commit(self._inputs_changed(garment_image_ref=image_ref or None))

    def set_style_hint(self, style_hint: Optional[str]) -> GenerationSession:
        hint = (style_hint or "").strip() or None
        return self._commit(replace(self._session, style_hint=hint))

    def reset(self) -> GenerationSession:
        """Return to idle and clear images, hint, result and error."""
        return self._commit(GenerationSession())

    async def generate(
        self,
        quality: QualityTier,
        model: ModelSelector,
        garment_category: Optional[GarmentCategory] = None,
    ) -> GenerationSession:
        """Run one generation and return the session state once it settles.

        Precondition failures settle immediately without any network call.
        If the call is superseded while in flight, its outcome is discarded
        and the returned state reflects the newer request.
        """
        request_id = uuid4().hex
        # Claim the token first so anything older still in flight is discarded.
        self._session = replace(self._session, request_id=request_id)
        session = self._session

        if not session.person_image_ref or not session.garment_image_ref:
            return self._fail(request_id, classified_error(ErrorKind.INVALID_INPUT, "Missing images"))

        try:
            quality = QualityTier(quality)
            model = ModelSelector(model)
            cost = self.cost_table.total_cost(quality, model)
        except ValueError as exc:
            return self._fail(
                request_id,
                classified_error(ErrorKind.INVALID_INPUT, str(exc), UNSUPPORTED_OPTION_MESSAGE),
            )

        balance = await self._read_balance()
        if self._session.request_id != request_id:
            LOGGER.info("Generation %s superseded during credit check", request_id)
            return self._session
        if balance is not None and balance < cost:
            return self._fail(
                request_id,
                classified_error(ErrorKind.INSUFFICIENT_CREDIT, f"Balance {balance} is below cost {cost}"),
            )

        self._commit(replace(self._session, phase=GenerationPhase.GENERATING, result_ref=None, error=None))
        LOGGER.info(
            "Generation %s started (quality=%s, model=%s, cost=%d)", request_id, quality.value, model.value, cost
        )

        start = time.time()
        outcome = await self._build_and_dispatch(session, quality, model, garment_category)
        LOGGER.info("Generation %s settled in %.3fs", request_id, time.time() - start)

        if self._session.request_id != request_id:
            LOGGER.warning("Discarding stale outcome for superseded generation %s", request_id)
        else:
            if isinstance(outcome, GenerationSuccess):
                self._commit(replace(self._session, phase=GenerationPhase.SUCCEEDED, result_ref=outcome.result_ref))
            else:
                self._commit(replace(self._session, phase=GenerationPhase.FAILED, error=outcome))
            await self._record(request_id, quality, model, cost, outcome)

        await self._refresh_balance()
        return self._session

    async def _build_and_dispatch(
        self,
        session: GenerationSession,
        quality: QualityTier,
        model: ModelSelector,
        garment_category: Optional[GarmentCategory],
    ) -> GatewayResult:
        async def run() -> GatewayResult:
            request = await self.builder.build(
                session.person_image_ref,
                session.garment_image_ref,
                quality,
                model,
                style_hint=session.style_hint,
                garment_category=garment_category,
            )
            return await self.gateway.dispatch(request)

        try:
            return await asyncio.wait_for(run(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            LOGGER.warning("Generation timed out after %.1fs", self.timeout_s)
            return classified_error(ErrorKind.TRANSIENT_BACKEND, f"Generation timed out after {self.timeout_s:.0f}s")
        except GenerationInputError as exc:
            return classified_error(ErrorKind.INVALID_INPUT, str(exc))
        except (ImageReadError, ImageEncodeError) as exc:
            LOGGER.warning("Image preparation failed: %s", exc)
            return classified_error(ErrorKind.INVALID_INPUT, str(exc), UNREADABLE_IMAGE_MESSAGE)
        except Exception as exc:
            LOGGER.exception("Unexpected error during generation")
            return classified_error(ErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")

    def _inputs_changed(self, **changes) -> GenerationSession:
        return replace(
            self._session,
            phase=GenerationPhase.IDLE,
            result_ref=None,
            error=None,
            request_id=None,
            **changes,
        )

    def _fail(self, request_id: str, error: ClassifiedError) -> GenerationSession:
        LOGGER.info("Generation %s rejected before dispatch: %s", request_id, error.kind.value)
        return self._commit(
            replace(self._session, phase=GenerationPhase.FAILED, result_ref=None, error=error, request_id=request_id)
        )

    def _commit(self, session: GenerationSession) -> GenerationSession:
        previous = self._session.phase
        self._session = session
        if previous is not session.phase:
            LOGGER.debug("Session phase %s -> %s", previous.value, session.phase.value)
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                LOGGER.exception("Session listener failed")
        return session

    async def _read_balance(self) -> Optional[int]:
        if self.credits is None:
            return None
        try:
            return await self.credits.current_balance()
        except CreditLedgerError as exc:
            LOGGER.warning("Credit balance unavailable, deferring to backend check: %s", exc)
            return None

    async def _refresh_balance(self) -> None:
        if self.credits is None:
            return
        try:
            await self.credits.fetch_balance()
        except CreditLedgerError as exc:
            LOGGER.warning("Credit balance refresh failed: %s", exc)

    async def _record(
        self,
        request_id: str,
        quality: QualityTier,
        model: ModelSelector,
        cost: int,
        outcome: GatewayResult,
    ) -> None:
        if self.history is None:
            return
        success = isinstance(outcome, GenerationSuccess)
        record = GenerationRecord(
            request_id=request_id,
            quality=quality.value,
            model=model.value,
            credit_cost=cost,
            phase=(GenerationPhase.SUCCEEDED if success else GenerationPhase.FAILED).value,
            error_kind=None if success else outcome.kind.value,
            result_ref=outcome.result_ref if success else None,
        )
        try:
            await self.history.record_generation(record)
        except Exception:
            LOGGER.exception("Failed to record generation %s", request_id)
