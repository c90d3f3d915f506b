from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import app as app_module
import config
from app import VoteCommitService, app, get_service
from conftest import VOTER, CountingSaltSource, FakeLedger, FakeOracle, make_request
from models import VotePhase

DEV_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
DEV_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


class FakeVoting(FakeOracle):
    address = "0x000000000000000000000000000000000000dEaD"


@pytest.fixture
def voting():
    return FakeVoting(pending=[make_request("BTCUSD"), make_request("ETHUSD")])


@pytest.fixture
def ledger():
    return FakeLedger(max_batch_size=25)


@pytest.fixture
def client(voting, ledger):
    service = VoteCommitService(voting, ledger, VOTER, salt_source=CountingSaltSource())
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_status_reports_round_and_phase(client):
    body = client.get("/status").json()
    assert body["status"] == "running"
    assert body["voter"] == VOTER
    assert body["round_id"] == 7
    assert body["phase"] == "COMMIT"


def test_eligible_requests_listed(client, voting):
    voting.mark_committed(VOTER, voting.pending[0], 7)

    body = client.get("/requests/eligible").json()

    assert body["accepting_commits"] is True
    assert [r["identifier"] for r in body["requests"]] == ["ETHUSD"]
    assert body["requests"][0]["time"] == 1_700_000_000


def test_commit_votes(client, ledger):
    response = client.post(
        "/votes/commit",
        json={"votes": [
            {"identifier": "BTCUSD", "time": 1_700_000_000, "price": "65000.25"},
            {"identifier": "ETHUSD", "time": 1_700_000_000, "price": "-1"},
        ]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["committed"] == 1
    assert body["failed"] == 0
    assert body["batches_used"] == 1
    assert body["successes"][0]["identifier"] == "BTCUSD"
    assert body["successes"][0]["salt"] == "0x" + "00" * 31 + "01"
    assert [f["identifier"] for f in body["construction_failures"]] == ["ETHUSD"]
    assert len(ledger.calls) == 1


def test_commit_outside_commit_phase_conflicts(client, voting, ledger):
    voting.phase = VotePhase.REVEAL

    response = client.post("/votes/commit", json={"votes": [{"identifier": "BTCUSD", "time": 1, "price": "1"}]})

    assert response.status_code == 409
    assert ledger.calls == []


@pytest.mark.parametrize("identifier", ["0xzz", "X" * 33])
def test_bad_identifier_rejected(client, identifier):
    response = client.post("/votes/commit", json={"votes": [{"identifier": identifier, "time": 1, "price": "1"}]})
    assert response.status_code == 422


def test_negative_time_rejected(client):
    response = client.post("/votes/commit", json={"votes": [{"identifier": "BTCUSD", "time": -1, "price": "1"}]})
    assert response.status_code == 422


def test_build_service_waits_for_rpc_and_uses_local_key(monkeypatch):
    chain_cls = MagicMock()
    monkeypatch.setattr(app_module, "Chain", chain_cls)
    monkeypatch.setattr(app_module, "VotingContract", MagicMock())
    monkeypatch.setattr(config, "IN_ENCLAVE", False)
    monkeypatch.setattr(config, "VOTER_PRIVATE_KEY", DEV_KEY)
    monkeypatch.setattr(config, "VOTE_ENCRYPTION_PUBLIC_KEY", "")

    service = app_module.build_service()

    chain_cls.return_value.wait_for_rpc.assert_called_once_with(timeout=120)
    assert service.voter == DEV_ADDRESS
    assert len(service.salt_source(32)) == 32


def test_build_service_survives_rpc_timeout(monkeypatch):
    chain_cls = MagicMock()
    chain_cls.return_value.wait_for_rpc.side_effect = TimeoutError("rpc down")
    monkeypatch.setattr(app_module, "Chain", chain_cls)
    monkeypatch.setattr(app_module, "VotingContract", MagicMock())
    monkeypatch.setattr(config, "IN_ENCLAVE", False)
    monkeypatch.setattr(config, "VOTER_PRIVATE_KEY", DEV_KEY)
    monkeypatch.setattr(config, "VOTE_ENCRYPTION_PUBLIC_KEY", "")

    assert app_module.build_service().voter == DEV_ADDRESS
