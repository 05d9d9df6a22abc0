import asyncio

import pytest
from fastapi.testclient import TestClient

from startale_lotto.lottery.engine import LottoEngine
from startale_lotto.lottery.models import LotteryType
from startale_lotto.web_server import LottoWebServer

from fakes import OTHER, PLAYER, FakeWallet, decode, fast_config, lottery_drawn_raw, spin_result_raw, tx_hash


@pytest.fixture
def make_api(client):
    def _make(wallet=None):
        engine = LottoEngine(fast_config(), client, wallet or FakeWallet())
        return engine, TestClient(LottoWebServer(engine.config, engine).app)

    return _make


def test_state_reports_spin_cost_and_store(make_api) -> None:
    _, api = make_api()
    body = api.get("/api/state").json()
    assert body["spinCost"]["valueWei"] == 168333333333333
    assert body["engine"]["targetChainId"] == 1946
    assert body["store"]["history"] == []


def test_spin_success(make_api, client) -> None:
    client.receipts[tx_hash(1)] = {"status": 1, "logs": [spin_result_raw(PLAYER, False, 0, "LOSE", tx_hash(1))]}
    engine, api = make_api()
    with api:
        response = api.post("/api/spin")
    assert response.status_code == 200
    assert response.json()["txHash"] == tx_hash(1)
    assert engine.outcomes.has(tx_hash(1))


def test_spin_on_wrong_network_conflicts(make_api) -> None:
    _, api = make_api(FakeWallet(chain_id=1, allow_switch=False))
    response = api.post("/api/spin")
    assert response.status_code == 409
    assert response.json()["errorType"] == "WrongNetworkError"


def test_ticket_validation(make_api) -> None:
    _, api = make_api()
    assert api.post("/api/tickets", json={"lottery_type": 0, "quantity": 1}).status_code == 422
    response = api.post("/api/tickets", json={"lottery_type": 1, "quantity": 1, "manual_eth": "abc"})
    assert response.status_code == 400


def test_ticket_purchase_and_claim(make_api) -> None:
    _, api = make_api()
    bought = api.post("/api/tickets", json={"lottery_type": 3, "quantity": 1})
    claimed = api.post("/api/claim")
    assert bought.status_code == 200 and bought.json()["kind"] == "buy_ticket"
    assert claimed.status_code == 200 and claimed.json()["kind"] == "claim"


def test_winners_and_quote(make_api) -> None:
    engine, api = make_api()
    engine.subscriber.handle_log(decode(lottery_drawn_raw(2, 1, [OTHER], 10, tx_hash(5))))

    winners = api.get("/api/winners", params={"lottery_type": 2}).json()["winners"]
    assert [w["address"].lower() for w in winners] == [OTHER]
    assert api.get("/api/winners", params={"lottery_type": 9}).status_code == 400
    quote = api.get("/api/tickets/quote", params={"lottery_type": 1, "eth_amount": "0.001"}).json()
    assert quote == {"lotteryType": "Weekly", "tickets": 3}


def test_rounds_include_countdown(make_api) -> None:
    engine, api = make_api()
    asyncio.run(engine.subscriber.refresh_rounds())
    rounds = api.get("/api/rounds").json()["rounds"]
    assert [r["lotteryTypeId"] for r in rounds] == [1, 2, 3]
    assert rounds[0]["potentialWinningsWei"] == 10**15
    assert set(rounds[0]["countdown"]) == {"days", "hours", "mins", "secs"}


def test_websocket_sends_snapshot_first(make_api) -> None:
    _, api = make_api()
    with api.websocket_connect("/ws/lotto") as ws:
        message = ws.receive_json()
    assert message["type"] == "snapshot"
    assert "wheel" in message["payload"]


def test_credits_and_eth_cost_reads(make_api, client) -> None:
    client.credits[LotteryType.BIWEEKLY] = 4
    _, api = make_api()

    credits = api.get("/api/credits").json()
    assert credits["credits"] == {"Weekly": 0, "Biweekly": 4, "Monthly": 0}
    assert api.get("/api/eth-cost", params={"usd": 3}).json()["costWei"] == 10**15
    assert api.get("/api/eth-cost", params={"usd": 0}).status_code == 400

    _, no_account = make_api(FakeWallet(account=None))
    assert no_account.get("/api/credits").status_code == 409
