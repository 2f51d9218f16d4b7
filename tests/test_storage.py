# tests/test_storage.py
from unittest.mock import MagicMock

import pytest
import redis
from tenacity import wait_none

from storefront_cart.domain.schemas import CustomerProfile
from storefront_cart.repos.session_repo import CUSTOMER_KEY, GUEST_SESSION_KEY, SessionRepo
from storefront_cart.repos.storage import MemoryStorage, RedisStorage, build_storage


@pytest.fixture
def redis_client():
    return MagicMock()


def test_redis_keys_are_namespaced(redis_client):
    storage = RedisStorage(namespace="shop-a", client=redis_client)
    redis_client.get.return_value = "sess-1-x"

    storage.set(GUEST_SESSION_KEY, "sess-1-x")
    value = storage.get(GUEST_SESSION_KEY)
    storage.delete(GUEST_SESSION_KEY)

    redis_client.set.assert_called_once_with("shop-a:guest_session", "sess-1-x")
    redis_client.get.assert_called_once_with("shop-a:guest_session")
    redis_client.delete.assert_called_once_with("shop-a:guest_session")
    assert value == "sess-1-x"


def test_redis_errors_are_retried(redis_client, monkeypatch):
    monkeypatch.setattr(RedisStorage.get.retry, "wait", wait_none())
    redis_client.get.side_effect = [redis.ConnectionError("down"), "sess-2-y"]

    storage = RedisStorage(namespace="shop", client=redis_client)

    assert storage.get(GUEST_SESSION_KEY) == "sess-2-y"
    assert redis_client.get.call_count == 2


def test_build_storage():
    assert isinstance(build_storage("memory"), MemoryStorage)
    with pytest.raises(ValueError):
        build_storage("sqlite")


def test_memory_storage_delete_missing_key_is_fine():
    storage = MemoryStorage()
    storage.delete("nothing")
    assert storage.get("nothing") is None


def test_session_repo_round_trips_customer():
    repo = SessionRepo(MemoryStorage())
    profile = CustomerProfile(id=5, email="dev@example.com", name="Dev", phone="98")

    repo.save_customer(profile)
    assert repo.get_customer() == profile

    repo.delete_customer()
    assert repo.get_customer() is None


def test_session_repo_treats_blank_token_as_missing():
    repo = SessionRepo(MemoryStorage({GUEST_SESSION_KEY: ""}))
    assert repo.get_session_token() is None


def test_session_repo_drops_corrupt_customer():
    storage = MemoryStorage({CUSTOMER_KEY: '{"id": "not a number"}'})
    repo = SessionRepo(storage)

    with pytest.raises(ValueError):
        repo.get_customer()

    assert storage.get(CUSTOMER_KEY) is None
