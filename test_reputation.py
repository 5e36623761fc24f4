# test_reputation.py
"""
Reputation and storage tests: persistence of the suspicious / trusted
sets, tolerance of missing or failing storage, whitelist loading.
"""

import asyncio
import json
import sqlite3
from concurrent.futures import ThreadPoolExecutor

import pytest

from phishing_detector.services.reputation_service import (
    SUSPICIOUS_DOMAINS_KEY,
    TRUSTED_DOMAINS_KEY,
    ReputationService,
)
from phishing_detector.services.statistics import StatisticsService
from phishing_detector.services.storage import (
    KeyValueStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
    StorageError,
)
from phishing_detector.services.url_parser import ParseError


class FailingStore(KeyValueStore):
    """Every operation fails, like a corrupt or locked database"""

    def get(self, keys):
        raise StorageError("read failed")

    def set(self, items):
        raise StorageError("write failed")

    def remove(self, keys):
        raise StorageError("remove failed")


def test_sqlite_store_round_trip(tmp_path):
    store = SQLiteKeyValueStore(str(tmp_path / "kv.db"))

    store.set({"a": [1, 2], "b": {"x": "y"}})
    assert store.get(["a", "b", "missing"]) == {"a": [1, 2], "b": {"x": "y"}}

    store.set({"a": []})
    assert store.get(["a"]) == {"a": []}

    store.remove(["a", "missing"])
    assert store.get(["a", "b"]) == {"b": {"x": "y"}}
    store.close()


def test_sqlite_store_survives_reopen(tmp_path):
    db_path = str(tmp_path / "nested" / "kv.db")
    first = SQLiteKeyValueStore(db_path)
    first.set({"stats": {"sites_blocked": 3}})
    first.close()

    second = SQLiteKeyValueStore(db_path)
    assert second.get(["stats"]) == {"stats": {"sites_blocked": 3}}
    second.close()


def test_memory_store_returns_copies():
    store = MemoryKeyValueStore({"k": ["a"]})
    value = store.get(["k"])["k"]
    value.append("b")
    assert store.get(["k"]) == {"k": ["a"]}


def test_load_with_absent_keys_gives_empty_sets():
    reputation = ReputationService(MemoryKeyValueStore())

    assert asyncio.run(reputation.load()) is True
    assert reputation.suspicious_domains == set()
    assert reputation.trusted_domains == set()
    assert reputation.last_load > 0


def test_load_failure_is_logged_and_reported():
    reputation = ReputationService(FailingStore())

    assert asyncio.run(reputation.load()) is False
    assert reputation.suspicious_domains == set()


def test_suspicious_domains_persist_across_instances(tmp_path):
    db_path = str(tmp_path / "reputation.db")

    first = ReputationService(SQLiteKeyValueStore(db_path))
    assert asyncio.run(first.mark_suspicious("Evil-Site.NET")) is True
    first.storage.close()

    second = ReputationService(SQLiteKeyValueStore(db_path))
    asyncio.run(second.load())
    assert second.is_suspicious("evil-site.net")
    assert second.is_suspicious("www.evil-site.net")
    second.storage.close()


def test_mark_suspicious_is_idempotent():
    store = MemoryKeyValueStore()
    reputation = ReputationService(store)

    async def mark_twice():
        await reputation.mark_suspicious("bad.example")
        await reputation.mark_suspicious("www.bad.example")

    asyncio.run(mark_twice())

    assert reputation.suspicious_domains == {"bad.example"}
    assert store.get([SUSPICIOUS_DOMAINS_KEY]) == {SUSPICIOUS_DOMAINS_KEY: ["bad.example"]}


def test_mark_suspicious_rejects_empty_domain():
    reputation = ReputationService(MemoryKeyValueStore())
    with pytest.raises(ValueError):
        asyncio.run(reputation.mark_suspicious("  "))


def test_save_failure_keeps_in_memory_state():
    reputation = ReputationService(FailingStore())

    assert asyncio.run(reputation.mark_suspicious("bad.example")) is False
    assert reputation.is_suspicious("bad.example")


def test_concurrent_marks_all_land_in_storage():
    store = MemoryKeyValueStore()
    reputation = ReputationService(store)
    domains = [f"bad{i}.example" for i in range(20)]

    async def mark_all():
        await asyncio.gather(*(reputation.mark_suspicious(d) for d in domains))

    asyncio.run(mark_all())

    assert store.get([SUSPICIOUS_DOMAINS_KEY])[SUSPICIOUS_DOMAINS_KEY] == sorted(domains)


def test_report_user_marks_hostname():
    reputation = ReputationService(MemoryKeyValueStore())

    domain = asyncio.run(reputation.report_user("https://www.Phish.example/login?x=1"))

    assert domain == "phish.example"
    assert reputation.is_suspicious("phish.example")


def test_report_user_rejects_malformed_url():
    reputation = ReputationService(MemoryKeyValueStore())
    with pytest.raises(ParseError):
        asyncio.run(reputation.report_user("not a url"))
    assert reputation.suspicious_domains == set()


def test_trust_is_unified_with_whitelist_and_persisted():
    store = MemoryKeyValueStore()
    reputation = ReputationService(store, whitelist={"google.com"})

    assert not reputation.is_whitelisted("mybank.example")
    assert asyncio.run(reputation.trust("www.mybank.example")) is True
    assert asyncio.run(reputation.trust("mybank.example")) is False

    assert reputation.is_whitelisted("mybank.example")
    assert reputation.is_whitelisted("google.com")
    assert store.get([TRUSTED_DOMAINS_KEY]) == {TRUSTED_DOMAINS_KEY: ["mybank.example"]}

    reloaded = ReputationService(store)
    asyncio.run(reloaded.load())
    assert reloaded.is_whitelisted("mybank.example")


def test_whitelist_file_extends_defaults(tmp_path):
    (tmp_path / "whitelisted_domains.json").write_text(
        json.dumps({"version": "1.0", "domains": ["PayPal.com", "www.chase.com", ""]}),
        encoding="utf-8",
    )

    reputation = ReputationService(MemoryKeyValueStore(), whitelist={"google.com"}, data_dir=str(tmp_path))

    assert reputation.whitelisted_domains == {"google.com", "paypal.com", "chase.com"}
    assert reputation.is_whitelisted("www.paypal.com")


def test_missing_or_broken_whitelist_file_is_ignored(tmp_path):
    reputation = ReputationService(MemoryKeyValueStore(), whitelist={"google.com"}, data_dir=str(tmp_path))
    assert reputation.whitelisted_domains == {"google.com"}

    (tmp_path / "whitelisted_domains.json").write_text("{not json", encoding="utf-8")
    reputation = ReputationService(MemoryKeyValueStore(), whitelist={"google.com"}, data_dir=str(tmp_path))
    assert reputation.whitelisted_domains == {"google.com"}


def test_reputation_stats():
    reputation = ReputationService(MemoryKeyValueStore(), whitelist={"a.com", "b.com"})
    asyncio.run(reputation.mark_suspicious("c.com"))

    stats = reputation.get_stats()
    assert stats["whitelisted_domains"] == 2
    assert stats["trusted_domains"] == 0
    assert stats["suspicious_domains"] == 1


def test_statistics_persist_and_reload():
    store = MemoryKeyValueStore()
    statistics = StatisticsService(store)

    async def bump():
        await statistics.increment(sites_blocked=1, threats_detected=1, alerts_shown=1)
        return await statistics.increment(threats_detected=1)

    latest = asyncio.run(bump())
    assert latest.threats_detected == 2

    reloaded = StatisticsService(store)
    asyncio.run(reloaded.load())
    assert reloaded.snapshot() == {"sites_blocked": 1, "threats_detected": 2, "alerts_shown": 1}


def test_statistics_never_decrement():
    statistics = StatisticsService(MemoryKeyValueStore())
    with pytest.raises(ValueError):
        asyncio.run(statistics.increment(alerts_shown=-1))
    assert statistics.snapshot() == {"sites_blocked": 0, "threats_detected": 0, "alerts_shown": 0}


def test_statistics_storage_failure_keeps_counting():
    statistics = StatisticsService(FailingStore())

    assert asyncio.run(statistics.load()) is False
    asyncio.run(statistics.increment(sites_blocked=1))
    assert statistics.snapshot()["sites_blocked"] == 1


@pytest.mark.parametrize("value", [
    "https://www.Evil-Example.tk/",
    "http://evil-example.tk:8080/login?next=/",
    "evil-example.tk",
])
def test_trust_accepts_url_or_bare_domain(value):
    reputation = ReputationService(MemoryKeyValueStore())

    assert asyncio.run(reputation.trust(value)) is True
    assert reputation.trusted_domains == {"evil-example.tk"}
    assert reputation.is_whitelisted("evil-example.tk")


@pytest.mark.parametrize("value", [
    "",
    "   ",
    "evil-example.tk/login",
    "evil-example.tk:8080",
    "evil example.tk",
    "https://",
])
def test_trust_rejects_values_that_are_not_sites(value):
    store = MemoryKeyValueStore()
    reputation = ReputationService(store)

    with pytest.raises(ValueError):
        asyncio.run(reputation.trust(value))
    assert reputation.trusted_domains == set()
    assert store.get([TRUSTED_DOMAINS_KEY]) == {}


def test_sqlite_close_reaches_every_thread(tmp_path):
    store = SQLiteKeyValueStore(str(tmp_path / "kv.db"))
    store.set({"k": 1})

    with ThreadPoolExecutor(max_workers=3) as pool:
        assert list(pool.map(lambda _: store.get(["k"]), range(6))) == [{"k": 1}] * 6

    connections = list(store._connections)
    assert len(connections) >= 2

    store.close()

    for connection in connections:
        with pytest.raises(sqlite3.ProgrammingError):
            connection.execute("SELECT 1")

    # A closed store reopens on demand
    assert store.get(["k"]) == {"k": 1}
    store.close()
