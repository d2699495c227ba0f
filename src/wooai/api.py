"""FastAPI surface for the chat widget.

Routes are thin: they validate input with pydantic models and delegate to
the services built by ``wooai.services.build_services``.

  POST /chat/message            one-shot chat envelope
  POST /chat/stream             Server-Sent Events: ``data: {"message": ...}``
                                frames, then ``event: done`` with the envelope
  GET  /health                  liveness
  GET  /kb/health               knowledge base health report
  POST /actions/add-to-cart     storefront action
  POST /actions/apply-coupon    storefront action
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from wooai import __version__
from wooai.errors import PersistenceError, WooAiError
from wooai.rag.orchestrator import ChatOptions, ChatResponse, error_envelope
from wooai.services import Services, build_services
from wooai.storefront import ActionResult

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "invalid_argument": 400,
    "safety_filter": 400,
    "rate_limited": 429,
    "upstream_unavailable": 503,
    "persistence_error": 503,
    "feature_unavailable": 403,
    "storefront_unavailable": 503,
}


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ChatOptionsModel(BaseModel):
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(None, gt=0, le=8_000)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    top_k: Optional[int] = Field(None, ge=1, le=20)
    threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    source_types: Optional[list[str]] = None


class ChatRequest(BaseModel):
    message: str = Field(..., max_length=4_000)
    conversation_id: Optional[str] = Field(None, max_length=64)
    context: Optional[dict[str, Any]] = None
    options: Optional[ChatOptionsModel] = None

    def chat_options(self) -> ChatOptions:
        if self.options is None:
            return ChatOptions()
        return ChatOptions(**self.options.model_dump())


class AddToCartRequest(BaseModel):
    product_id: int
    quantity: int = 1
    variation_id: Optional[int] = None


class ApplyCouponRequest(BaseModel):
    code: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_services(request: Request) -> Services:
    return request.app.state.services


def _envelope_response(result: ChatResponse) -> JSONResponse:
    status = 200 if result.success else _STATUS_BY_CODE.get(result.error_code or "", 500)
    return JSONResponse(status_code=status, content=result.to_dict())


def _error_response(request: Request, error: str, error_code: str) -> JSONResponse:
    """Failure in the envelope shape of the route family that was called."""
    status = _STATUS_BY_CODE.get(error_code, 500)
    path = request.url.path
    if path.startswith("/chat/"):
        content = error_envelope(error_code, error).to_dict()
    elif path.startswith("/actions/"):
        content = ActionResult(False, error, {"error_code": error_code}).to_dict()
    else:
        content = {"success": False, "error": error, "error_code": error_code}
    return JSONResponse(status_code=status, content=content)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        field_path = ".".join(str(p) for p in err.get("loc", ())[1:]) or "body"
        parts.append(f"{field_path}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


def _sse_frames(events: Iterator[Any]) -> Iterator[str]:
    for event in events:
        if event.done:
            payload = event.response.to_dict() if event.response else {}
            yield f"event: done\ndata: {json.dumps(payload)}\n\n"
        else:
            yield f"data: {json.dumps({'message': event.message})}\n\n"


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI app around *services* (built from config when omitted)."""
    app = FastAPI(
        title="wooai",
        description="Shopping assistant chat and knowledge base API",
        version=__version__,
    )
    app.state.services = services or build_services()

    @app.exception_handler(WooAiError)
    async def _wooai_error(request: Request, exc: WooAiError) -> JSONResponse:
        if isinstance(exc, PersistenceError):
            logger.error("Request failed: %s", exc)
        return _error_response(request, str(exc), exc.error_code)

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _validation_message(exc)
        logger.info("Rejected request to %s: %s", request.url.path, message)
        return _error_response(request, message, "invalid_argument")

    @app.post("/chat/message")
    def chat_message(body: ChatRequest, svc: Services = Depends(get_services)) -> JSONResponse:
        result = svc.orchestrator.generate_response(
            body.message,
            conversation_id=body.conversation_id,
            context=body.context,
            options=body.chat_options(),
        )
        return _envelope_response(result)

    @app.post("/chat/stream")
    def chat_stream(body: ChatRequest, svc: Services = Depends(get_services)) -> StreamingResponse:
        events = svc.orchestrator.stream_response(
            body.message,
            conversation_id=body.conversation_id,
            context=body.context,
            options=body.chat_options(),
        )
        return StreamingResponse(
            _sse_frames(events),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/health")
    def health(svc: Services = Depends(get_services)) -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "plan": svc.plans.plan,
            "offline": svc.config.generation.offline,
        }

    @app.get("/kb/health")
    def kb_health(
        force: bool = Query(False, description="Recalculate instead of using the cached report"),
        svc: Services = Depends(get_services),
    ) -> dict[str, Any]:
        return svc.health.get_health_score(force_recalculate=force).to_dict()

    @app.post("/actions/add-to-cart")
    def add_to_cart(body: AddToCartRequest, svc: Services = Depends(get_services)) -> JSONResponse:
        result = svc.storefront.add_to_cart(body.product_id, body.quantity, body.variation_id)
        return _action_response(result)

    @app.post("/actions/apply-coupon")
    def apply_coupon(body: ApplyCouponRequest, svc: Services = Depends(get_services)) -> JSONResponse:
        result = svc.storefront.apply_coupon(body.code)
        return _action_response(result)

    return app


def _action_response(result: Any) -> JSONResponse:
    status = 200
    if not result.success:
        status = _STATUS_BY_CODE.get(result.data.get("error_code", ""), 400)
    return JSONResponse(status_code=status, content=result.to_dict())

