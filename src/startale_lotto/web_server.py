"""FastAPI web server exposing the lotto engine to a front end."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from startale_lotto.lottery.engine import LottoEngine
from startale_lotto.lottery.errors import (
    InvalidParametersError,
    OutcomeTimeoutError,
    PreSubmissionError,
    SubmissionError,
    WalletRejectedError,
)
from startale_lotto.lottery.models import LotteryType, OperationResult
from startale_lotto.lottery.pricing import countdown, potential_winnings_wei, spin_cost, tickets_for_eth
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

STORE_EVENTS = (
    "history_update",
    "winners_update",
    "round_update",
    "winnings_update",
    "wheel_update",
    "spin_result",
    "operation_error",
)


class TicketRequest(BaseModel):
    lottery_type: int = Field(..., ge=1, le=3)
    quantity: int = Field(1, ge=1, le=100)
    manual_eth: Optional[str] = None


def _status_code_for(result: OperationResult) -> int:
    error = result.error
    if result.ok or error is None:
        return 200
    if isinstance(error, InvalidParametersError):
        return 400
    if isinstance(error, (PreSubmissionError, WalletRejectedError)):
        return 409
    if isinstance(error, OutcomeTimeoutError):
        return 504
    if isinstance(error, SubmissionError):
        return 502
    return 500


class LottoWebServer:
    """HTTP and WebSocket gateway for the lotto engine."""

    def __init__(self, config: Dict[str, Any], engine: LottoEngine) -> None:
        self.config = config
        self.engine = engine
        self._store = engine.store

        self.app = FastAPI(
            title="Startale Lotto API",
            description="Spin, ticket and claim operations for the Startale Lotto contract",
            version="1.0.0",
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._broadcast_queue: Optional[asyncio.Queue[Tuple[str, Dict[str, Any] | None]]] = None
        self._broadcast_task: Optional[asyncio.Task[None]] = None
        self._listeners_registered = False
        self._websockets: Set[WebSocket] = set()

        self._setup_middleware()
        self._setup_routes()

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:
        @self.app.get("/api/health")
        async def health_check() -> Dict[str, Any]:
            try:
                blockchain_health = await self.engine.client.health_check()
            except Exception as exc:  # pragma: no cover - diagnostic path
                logger.warning("Blockchain health check failed: %s", exc)
                blockchain_health = {"status": "error", "detail": str(exc)}
            return {
                "status": "ok",
                "timestamp": datetime.utcnow().isoformat(),
                "blockchain": blockchain_health,
            }

        @self.app.get("/api/state")
        async def get_state() -> Dict[str, Any]:
            quote = spin_cost(self.engine.price_feed.eth_usd, self.engine.price_buffer)
            return {
                "engine": self.engine.get_status(),
                "store": self._store.serialize(),
                "spinCost": {"display": quote.display, "valueWei": quote.value_wei},
            }

        @self.app.get("/api/rounds")
        async def get_rounds() -> Dict[str, Any]:
            now = int(time.time())
            rounds = []
            for snapshot in self._store.get_rounds():
                left = countdown(snapshot.end_time_unix, now)
                rounds.append(
                    {
                        "lotteryType": snapshot.lottery_type.label,
                        "lotteryTypeId": int(snapshot.lottery_type),
                        "endTime": snapshot.end_time_unix,
                        "poolWei": snapshot.pool_wei,
                        "participants": snapshot.participant_count,
                        "ticketPriceWei": snapshot.ticket_price_wei,
                        "potentialWinningsWei": potential_winnings_wei(snapshot),
                        "countdown": {"days": left.days, "hours": left.hours, "mins": left.mins, "secs": left.secs},
                    }
                )
            return {"rounds": rounds}

        @self.app.get("/api/history")
        async def get_history(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 50))
            return {"history": self._store.serialize_history()[:limit]}

        @self.app.get("/api/winners")
        async def get_winners(lottery_type: Optional[int] = None, limit: int = 6) -> Dict[str, Any]:
            if lottery_type is None:
                return {"winners": self._store.serialize_winners()}
            try:
                selected = LotteryType(lottery_type)
            except ValueError:
                raise HTTPException(status_code=400, detail="Unknown lottery type")
            winners = self._store.recent_winners(selected, limit=limit)
            return {
                "winners": [
                    {"address": w.address, "prizeWei": w.prize_wei, "lotteryType": w.lottery_type.label, "roundId": w.round_id}
                    for w in winners
                ]
            }

        @self.app.get("/api/tickets/quote")
        async def quote_tickets(lottery_type: int, eth_amount: str) -> Dict[str, Any]:
            try:
                selected = LotteryType(lottery_type)
                count = tickets_for_eth(eth_amount, selected, self.engine.price_feed.eth_usd)
            except (ArithmeticError, ValueError):
                raise HTTPException(status_code=400, detail="Invalid quote request")
            return {"lotteryType": selected.label, "tickets": count}

        @self.app.get("/api/credits")
        async def get_credits() -> Dict[str, Any]:
            account = self.engine.wallet.account
            if not account:
                raise HTTPException(status_code=409, detail="No wallet account connected")
            credits = {}
            for lottery_type in (LotteryType.WEEKLY, LotteryType.BIWEEKLY, LotteryType.MONTHLY):
                try:
                    credits[lottery_type.label] = await self.engine.client.get_ticket_credits(account, lottery_type)
                except Exception as exc:
                    logger.error("Ticket credit read for %s failed: %s", lottery_type.label, exc)
                    raise HTTPException(status_code=502, detail="Ticket credit read failed")
            return {"account": account, "credits": credits}

        @self.app.get("/api/eth-cost")
        async def get_eth_cost(usd: int) -> Dict[str, Any]:
            if usd <= 0:
                raise HTTPException(status_code=400, detail="usd must be positive")
            try:
                cost_wei = await self.engine.client.get_eth_cost(usd)
            except Exception as exc:
                logger.error("getEthCost(%s) failed: %s", usd, exc)
                raise HTTPException(status_code=502, detail="ETH cost read failed")
            return {"usd": usd, "costWei": cost_wei}

        @self.app.post("/api/spin")
        async def spin() -> JSONResponse:
            return self._operation_response(await self.engine.spin())

        @self.app.post("/api/tickets")
        async def buy_tickets(request: TicketRequest) -> JSONResponse:
            result = await self.engine.buy_ticket(
                LotteryType(request.lottery_type), request.quantity, request.manual_eth
            )
            return self._operation_response(result)

        @self.app.post("/api/claim")
        async def claim() -> JSONResponse:
            return self._operation_response(await self.engine.claim())

        @self.app.websocket("/ws/lotto")
        async def websocket_endpoint(websocket: WebSocket) -> None:
            await websocket.accept()
            self._websockets.add(websocket)
            logger.info("WebSocket client connected (%s total)", len(self._websockets))
            try:
                await websocket.send_json({"type": "snapshot", "payload": self._store.serialize()})
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                self._websockets.discard(websocket)
                logger.info("WebSocket client disconnected (%s remaining)", len(self._websockets))

    @staticmethod
    def _operation_response(result: OperationResult) -> JSONResponse:
        return JSONResponse(status_code=_status_code_for(result), content=result.to_dict())

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "0.0.0.0", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting lotto web server on %s:%s", host, port)
        self._loop = asyncio.get_running_loop()
        if self._broadcast_queue is None:
            self._broadcast_queue = asyncio.Queue()
        self._register_store_listeners()
        if self._broadcast_task is None:
            self._broadcast_task = asyncio.create_task(self._broadcast_loop(), name="lotto-web-broadcast")

        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            logger.info("Lotto web server stopped")

    async def stop(self) -> None:
        logger.info("Stopping lotto web server")
        if self._broadcast_task:
            self._broadcast_task.cancel()
            try:
                await self._broadcast_task
            except asyncio.CancelledError:
                pass
            self._broadcast_task = None
        for websocket in list(self._websockets):
            try:
                await websocket.close(code=1001, reason="Server shutdown")
            except Exception as exc:  # pragma: no cover - defensive
                logger.debug("Error closing websocket: %s", exc)
        self._websockets.clear()

    # ------------------------------------------------------------------
    # Store listeners & broadcasting
    # ------------------------------------------------------------------
    def _register_store_listeners(self) -> None:
        if self._listeners_registered:
            return
        for event in STORE_EVENTS:
            self._store.add_listener(event, lambda payload, evt=event: self._enqueue_broadcast(evt, payload))
        self._listeners_registered = True

    def _enqueue_broadcast(self, event_type: str, payload: Any) -> None:
        if not self._broadcast_queue or not self._loop:
            return
        try:
            self._loop.call_soon_threadsafe(self._broadcast_queue.put_nowait, (event_type, payload))
        except RuntimeError:  # pragma: no cover - loop already closing
            logger.debug("Failed to enqueue broadcast for %s", event_type)

    async def _broadcast_loop(self) -> None:
        assert self._broadcast_queue is not None
        while True:
            event_type, payload = await self._broadcast_queue.get()
            try:
                await self._broadcast_to_clients(event_type, payload)
            except Exception as exc:  # pragma: no cover - defensive
                logger.exception("Broadcast loop error: %s", exc)

    async def _broadcast_to_clients(self, event_type: str, payload: Any) -> None:
        message = {"type": event_type, "payload": payload, "timestamp": datetime.utcnow().isoformat()}
        to_remove: List[WebSocket] = []
        for websocket in list(self._websockets):
            try:
                await websocket.send_json(message)
            except Exception as exc:  # pragma: no cover - defensive
                logger.debug("WebSocket send failed: %s", exc)
                to_remove.append(websocket)
        for websocket in to_remove:
            self._websockets.discard(websocket)
