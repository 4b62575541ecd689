from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from solders.keypair import Keypair
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from withdrawdesk.api.deps import get_db, get_rpc_http_client, get_session_factory, get_settings
from withdrawdesk.api.main import app
from withdrawdesk.config import Settings
from withdrawdesk.db.repos.wallet_repo import WalletRepo
from withdrawdesk.db.session import Base, create_schema
from withdrawdesk.domain.enums import Chain
from withdrawdesk.domain.models.transfer import DelegationState, TokenBalance
from withdrawdesk.infra.blockchain.solana.adapter import SolanaAdapter

SOL = Chain.SOLANA.chain_id
MINT = str(Keypair().pubkey())
WALLET_A = str(Keypair().pubkey())
WALLET_B = str(Keypair().pubkey())
RECEIVER = str(Keypair().pubkey())


@pytest.fixture()
async def factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def settings():
    return Settings(
        solana_signer_private_key=str(Keypair()),
        batch_delay=0,
        retry_base_delay=0,
        delegation_check_interval=0,
    )


@pytest.fixture()
async def client(factory, settings):
    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: factory
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_rpc_http_client] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _seed(factory, address: str, tokens: dict[str, str], chain_id: str = SOL):
    async with factory() as session:
        repo = WalletRepo(session)
        wallet = await repo.get_or_create(address, chain_id)
        for token_address, status in tokens.items():
            token = await repo.get_or_create_token(wallet, token_address)
            token.status = status
        await session.commit()


class FakeSolanaAdapter(SolanaAdapter):
    """Real address rules, no network."""

    def __init__(self):
        super().__init__(rpc=None)
        self.submitted: list[list] = []
        self.undelegated: set[str] = set()

    async def submit_and_confirm(self, items, signer):
        self.submitted.append(items)
        return f"sig-{len(self.submitted)}"

    async def check_delegation(self, wallet_address, token_address, spender):
        if wallet_address in self.undelegated:
            return DelegationState(is_delegated=False)
        return DelegationState(is_delegated=True, delegated_amount=Decimal("5"))

    async def get_balance(self, wallet_address, token_address):
        return TokenBalance(balance=Decimal("2"), decimals=6)


class TestPendingEndpoints:
    async def test_list_pending(self, client, factory):
        await _seed(factory, WALLET_A, {MINT: "pending", "OtherMint": "new"})

        res = await client.get("/api/executions/solana/pending")

        assert res.status_code == 200
        data = res.json()
        assert data["chain_id"] == SOL
        assert data["candidates"] == [{"wallet_address": WALLET_A, "token_addresses": [MINT]}]
        assert data["total_tokens"] == 1

    async def test_unknown_chain(self, client):
        res = await client.get("/api/executions/bitcoin/pending")
        assert res.status_code == 422

    async def test_update_status(self, client, factory):
        await _seed(factory, WALLET_A, {MINT: "pending"})

        res = await client.post("/api/executions/update-status", json={"updates": [
            {"wallet_address": WALLET_A, "token_address": MINT, "chain_id": SOL,
             "status": "executed", "tx_hash": "sig-x", "executed_by": "payer"},
            {"wallet_address": "Unknown", "token_address": MINT, "chain_id": SOL, "status": "executed"},
        ]})

        assert res.status_code == 200
        data = res.json()
        assert data["successful_updates"] == 1
        assert data["failed_updates"] == 1
        pending = await client.get("/api/executions/solana/pending")
        assert pending.json()["candidates"] == []

    async def test_update_status_rejects_unknown_chain_id(self, client):
        res = await client.post("/api/executions/update-status", json={"updates": [
            {"wallet_address": WALLET_A, "token_address": MINT, "chain_id": "999", "status": "executed"},
        ]})
        assert res.status_code == 422

    async def test_reset_token_status(self, client, factory):
        await _seed(factory, WALLET_A, {MINT: "pending"})

        res = await client.post("/api/executions/reset-token-status", json={
            "wallet_address": WALLET_A, "token_address": MINT, "chain_id": SOL,
        })
        assert res.status_code == 200
        assert res.json()["status"] == "new"

        again = await client.post("/api/executions/reset-token-status", json={
            "wallet_address": WALLET_A, "token_address": MINT, "chain_id": SOL,
        })
        assert again.status_code == 400

    async def test_reset_token_unknown_wallet(self, client):
        res = await client.post("/api/executions/reset-token-status", json={
            "wallet_address": WALLET_A, "token_address": MINT, "chain_id": SOL,
        })
        assert res.status_code == 404

    async def test_reset_pending(self, client, factory):
        await _seed(factory, WALLET_A, {MINT: "pending"})
        await _seed(factory, WALLET_B, {MINT: "pending"})

        res = await client.post("/api/executions/solana/reset-pending")
        assert res.status_code == 200
        assert res.json() == {"chain": "solana", "reset_count": 2}


class TestRunEndpoint:
    async def test_no_signer_configured(self, client, settings):
        settings.solana_signer_private_key = ""
        res = await client.post("/api/executions/solana/run", json={"receiver": RECEIVER})
        assert res.status_code == 503

    async def test_tron_has_no_server_signer(self, client):
        res = await client.post("/api/executions/tron/run", json={"receiver": RECEIVER})
        assert res.status_code == 503

    async def test_invalid_receiver(self, client, monkeypatch):
        monkeypatch.setattr("withdrawdesk.api.executions.build_chain_adapter", lambda *a: FakeSolanaAdapter())
        res = await client.post("/api/executions/solana/run", json={"receiver": "not-a-solana-key"})
        assert res.status_code == 422

    async def test_run_executes_pending_pairs(self, client, factory, monkeypatch):
        adapter = FakeSolanaAdapter()
        monkeypatch.setattr("withdrawdesk.api.executions.build_chain_adapter", lambda *a: adapter)
        await _seed(factory, WALLET_A, {MINT: "pending"})
        await _seed(factory, WALLET_B, {MINT: "pending"})

        res = await client.post("/api/executions/solana/run", json={"receiver": RECEIVER})

        assert res.status_code == 200
        report = res.json()
        assert report["outcome"] == "completed"
        assert report["result"]["successful_transfers"] == 2
        assert report["result"]["transaction_signatures"] == ["sig-1"]
        assert report["status_summary"]["successful_updates"] == 2
        assert {i.amount_base_units for i in adapter.submitted[0]} == {2_000_000}

        pending = await client.get("/api/executions/solana/pending")
        assert pending.json()["candidates"] == []

    async def test_run_with_nothing_pending(self, client, monkeypatch):
        monkeypatch.setattr("withdrawdesk.api.executions.build_chain_adapter", lambda *a: FakeSolanaAdapter())
        res = await client.post("/api/executions/solana/run", json={"receiver": RECEIVER})

        assert res.status_code == 200
        assert res.json()["outcome"] == "no_items"
        assert res.json()["result"]["total_transfers"] == 0


class TestCheckDelegationEndpoint:
    @pytest.fixture()
    def adapter(self, monkeypatch):
        adapter = FakeSolanaAdapter()
        monkeypatch.setattr("withdrawdesk.api.executions.build_chain_adapter", lambda *a: adapter)
        return adapter

    async def _token(self, factory, wallet_address: str):
        async with factory() as session:
            repo = WalletRepo(session)
            wallet = await repo.get_by_address(wallet_address, SOL)
            return await repo.get_token(wallet, MINT)

    async def test_snapshot_stored_for_known_wallets(self, client, factory, settings, adapter):
        await _seed(factory, WALLET_A, {MINT: "pending"})

        res = await client.post("/api/executions/solana/check-delegation", json={"wallets": [
            {"wallet_address": WALLET_A, "token_addresses": [MINT]},
            {"wallet_address": WALLET_B, "token_addresses": [MINT]},
        ]})

        assert res.status_code == 200
        data = res.json()
        assert data["spender"] == str(Keypair.from_base58_string(settings.solana_signer_private_key).pubkey())
        assert data["total_checked"] == 2
        assert data["total_delegated"] == 2
        assert [(r["wallet_address"], r["persisted"]) for r in data["results"]] == [
            (WALLET_A, True),
            (WALLET_B, False),
        ]

        token = await self._token(factory, WALLET_A)
        assert token.is_delegated is True
        assert token.delegated_amount == "5"
        assert token.balance == "2"
        assert token.decimals == 6
        assert token.delegation_checked_at is not None
        assert token.status == "pending"

    async def test_revoked_delegation_keeps_last_balance(self, client, factory, adapter):
        await _seed(factory, WALLET_A, {MINT: "new"})
        await client.post("/api/executions/solana/check-delegation", json={"wallets": [
            {"wallet_address": WALLET_A, "token_addresses": [MINT]},
        ]})

        adapter.undelegated.add(WALLET_A)
        res = await client.post("/api/executions/solana/check-delegation", json={
            "wallets": [{"wallet_address": WALLET_A, "token_addresses": [MINT]}],
            "spender": RECEIVER,
        })

        assert res.json()["total_delegated"] == 0
        token = await self._token(factory, WALLET_A)
        assert token.is_delegated is False
        assert token.delegated_amount == "0"
        assert token.balance == "2"

    async def test_no_spender_available(self, client, settings, adapter):
        settings.solana_signer_private_key = ""
        res = await client.post("/api/executions/solana/check-delegation", json={"wallets": []})
        assert res.status_code == 400

    async def test_invalid_spender(self, client, adapter):
        res = await client.post("/api/executions/solana/check-delegation", json={
            "wallets": [], "spender": "not-a-solana-key",
        })
        assert res.status_code == 422


class TestHealth:
    async def test_health(self, client):
        res = await client.get("/api/health")
        assert res.json()["status"] == "ok"
