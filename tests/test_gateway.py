import json

import httpx
import pytest
import respx
from httpx import Response
from govdeploy.core.errors import RejectedError, TransientError
from govdeploy.ledger.base import LedgerRequest, StepKind
from govdeploy.ledger.gateway import GatewayClient, is_retryable_status
from govdeploy.provisioning.executor import RetryPolicy, StepExecutor
from govdeploy.provisioning.plan import Step
from govdeploy.provisioning.state import RunState, RunStateStore

BASE = "https://gateway.example.com"


def mint_request():
    return LedgerRequest(
        kind=StepKind.MINT,
        params={"treasury": "0x1", "token": "0x2", "amount": 10},
        idempotency_key="run1:mint_supply",
    )


@pytest.mark.asyncio
async def test_account():
    client = GatewayClient(BASE, token="secret")

    with respx.mock:
        route = respx.get(f"{BASE}/v1/account").mock(
            return_value=Response(200, json={"address": "0xabc"})
        )

        assert await client.account() == "0xabc"
        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_submit_sends_idempotency_key():
    client = GatewayClient(BASE + "/")

    with respx.mock:
        route = respx.post(f"{BASE}/v1/requests").mock(
            return_value=Response(200, json={"success": True, "output": None, "tx_hash": "0xfeed"})
        )

        receipt = await client.submit(mint_request())

        request = route.calls.last.request
        assert request.headers["Idempotency-Key"] == "run1:mint_supply"
        assert "Authorization" not in request.headers
        assert receipt.success
        assert receipt.tx_hash == "0xfeed"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 503])
async def test_retryable_status_is_transient(status):
    client = GatewayClient(BASE)

    with respx.mock:
        respx.post(f"{BASE}/v1/requests").mock(return_value=Response(status))

        with pytest.raises(TransientError) as exc_info:
            await client.submit(mint_request())

        assert exc_info.value.details["status"] == status


@pytest.mark.asyncio
async def test_revert_is_rejected_with_reason():
    client = GatewayClient(BASE)

    with respx.mock:
        route = respx.post(f"{BASE}/v1/requests").mock(
            return_value=Response(422, json={"reason": "Ownable: caller is not the owner"})
        )

        with pytest.raises(RejectedError, match="caller is not the owner"):
            await client.submit(mint_request())

        assert route.call_count == 1


@pytest.mark.asyncio
async def test_network_error_is_transient():
    client = GatewayClient(BASE)

    with respx.mock:
        respx.post(f"{BASE}/v1/requests").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(TransientError, match="unreachable"):
            await client.submit(mint_request())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        httpx.RemoteProtocolError("Server disconnected without sending a response."),
        httpx.WriteError("Server disconnected without sending a response."),
        httpx.ReadTimeout("timed out"),
    ],
)
async def test_dropped_connection_is_transient(error):
    client = GatewayClient(BASE)

    with respx.mock:
        respx.post(f"{BASE}/v1/requests").mock(side_effect=error)

        with pytest.raises(TransientError, match="unreachable"):
            await client.submit(mint_request())


@pytest.mark.asyncio
async def test_dropped_connection_retried_by_executor():
    client = GatewayClient(BASE)
    store = RunStateStore(RunState(run_id="run1"))
    executor = StepExecutor(client, store, RetryPolicy(max_attempts=3, multiplier=0, min_wait=0, max_wait=0))
    step = Step(id="deploy_token", kind=StepKind.CREATE, params={"contract": "CharityToken", "args": []})

    with respx.mock:
        submit = respx.post(f"{BASE}/v1/requests")
        submit.side_effect = [
            httpx.RemoteProtocolError("Server disconnected without sending a response."),
            Response(200, json={"success": True, "output": "0xtoken"}),
        ]
        respx.get(f"{BASE}/v1/requests/run1:deploy_token").mock(return_value=Response(404))

        receipt = await executor.execute(step)

        assert receipt.output == "0xtoken"
        assert submit.call_count == 2
        assert store.state.steps["deploy_token"].attempts == 2


@pytest.mark.asyncio
async def test_lookup_missing_returns_none():
    client = GatewayClient(BASE)

    with respx.mock:
        respx.get(f"{BASE}/v1/requests/run1:mint_supply").mock(return_value=Response(404))

        assert await client.lookup("run1:mint_supply") is None


@pytest.mark.asyncio
async def test_lookup_found():
    client = GatewayClient(BASE)

    with respx.mock:
        respx.get(f"{BASE}/v1/requests/run1:deploy_token").mock(
            return_value=Response(200, json={"success": True, "output": "0xtoken"})
        )

        receipt = await client.lookup("run1:deploy_token")

        assert receipt.output == "0xtoken"


@pytest.mark.asyncio
async def test_query_posts_view_call():
    client = GatewayClient(BASE)

    with respx.mock:
        route = respx.post(f"{BASE}/v1/query").mock(return_value=Response(200, json={"value": True}))

        assert await client.query("0xlock", "hasRole", "PROPOSER_ROLE", "0xgov") is True
        body = json.loads(route.calls.last.request.content)
        assert body == {"address": "0xlock", "method": "hasRole", "args": ["PROPOSER_ROLE", "0xgov"]}


def test_is_retryable_status():
    assert is_retryable_status(429)
    assert is_retryable_status(502)
    assert not is_retryable_status(400)
    assert not is_retryable_status(404)
