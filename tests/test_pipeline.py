from __future__ import annotations

import threading

import pytest

from vinyl_alerts.config import PreferencesConfig
from vinyl_alerts.exceptions import PassAlreadyRunningError, PermanentFetchError, TemporaryFetchError
from vinyl_alerts.models import PreferenceType
from vinyl_alerts.normalization import identity_key
from vinyl_alerts.pipeline import ReconciliationPass, add_preference, seed_preferences

from conftest import FakeClient, FakeNotifier, FakeStore, StepClock, album_term, artist_term, candidate, genre_term


def _pass(store, client, notifier, **kwargs) -> ReconciliationPass:
    kwargs.setdefault("sleep", lambda seconds: None)
    kwargs.setdefault("clock", StepClock())
    return ReconciliationPass(store, client, notifier, **kwargs)


def _key(seller: str, title: str) -> str:
    return identity_key(seller, None, title)


def test_first_pass_alerts_once_then_quiet(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(seller="alice"), candidate(seller="bob")]})
    reconciliation_pass = _pass(store, client, notifier)

    first = reconciliation_pass.run()
    second = reconciliation_pass.run()

    assert first.new == 2 and first.success
    assert second.new == 0 and second.seen_again == 2
    assert [len(batch) for batch in notifier.batches] == [2, 0]
    assert [listing.seller for listing in notifier.batches[0]] == ["alice", "bob"]


def test_duplicate_candidate_in_one_pass_is_new_then_seen_again(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(), candidate()]})

    summary = _pass(store, client, notifier).run()

    assert summary.new == 1
    assert summary.seen_again == 1
    assert len(notifier.batches[0]) == 1
    assert len(store.history) == 1


def test_same_listing_from_two_terms_alerts_once(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd"), album_term("The Dark Side of the Moon")]
    client = FakeClient({
        "Pink Floyd": [candidate()],
        "The Dark Side of the Moon": [candidate()],
    })

    summary = _pass(store, client, notifier).run()

    assert summary.new == 1 and summary.seen_again == 1
    assert len(notifier.batches) == 1
    assert len(notifier.batches[0]) == 1


def test_genre_terms_are_not_searched(store, notifier) -> None:
    store.preferences = [genre_term("Rock"), artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate()]})

    summary = _pass(store, client, notifier).run()

    assert client.searched == ["Pink Floyd"]
    assert summary.terms_searched == 1


def test_irrelevant_candidates_are_counted_and_ignored(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(artist="Floyd Cramer", title="Last Date")]})

    summary = _pass(store, client, notifier).run()

    assert summary.irrelevant == 1
    assert store.listings == {}
    assert notifier.batches == [[]]


def test_price_change_is_not_alerted(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(price="100")]})
    reconciliation_pass = _pass(store, client, notifier)
    reconciliation_pass.run()

    client.results["Pink Floyd"] = [candidate(price="120")]
    summary = reconciliation_pass.run()

    assert summary.price_changed == 1
    assert summary.new_listings == []
    assert len(store.history) == 2


def test_sweep_deactivates_missing_listings(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(seller="a"), candidate(seller="b")]})
    reconciliation_pass = _pass(store, client, notifier)
    reconciliation_pass.run()

    client.results["Pink Floyd"] = [candidate(seller="a")]
    summary = reconciliation_pass.run()

    key_a = _key("a", "The Dark Side of the Moon")
    key_b = _key("b", "The Dark Side of the Moon")
    assert summary.deactivated == 1
    assert store.listings[key_a].is_active
    assert not store.listings[key_b].is_active

    client.results["Pink Floyd"] = [candidate(seller="a"), candidate(seller="b")]
    third = reconciliation_pass.run()

    assert third.seen_again == 2 and third.new == 0
    assert store.listings[key_b].is_active


def test_sweep_can_be_disabled(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate()]})
    reconciliation_pass = _pass(store, client, notifier, deactivate_missing=False)
    reconciliation_pass.run()

    client.results["Pink Floyd"] = []
    reconciliation_pass.run()

    assert "mark_inactive_except" not in store.calls
    assert all(listing.is_active for listing in store.listings.values())


def test_failed_term_continues_and_skips_sweep(store, notifier) -> None:
    store.preferences = [artist_term("Broken"), artist_term("Pink Floyd")]
    client = FakeClient(
        {"Pink Floyd": [candidate()]},
        failures={"Broken": [PermanentFetchError("HTTP 401", detail=401)]},
    )

    summary = _pass(store, client, notifier).run()

    assert summary.failed_terms == ["Broken"]
    assert summary.new == 1
    assert not summary.success
    assert "mark_inactive_except" not in store.calls
    assert notifier.errors == [("Failed to scrape artist: Broken", "fake")]
    assert len(notifier.batches) == 1


def test_temporary_failure_is_retried(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient(
        {"Pink Floyd": [candidate()]},
        failures={"Pink Floyd": [TemporaryFetchError("429"), TemporaryFetchError("429")]},
    )
    sleeps = []

    summary = _pass(store, client, notifier, max_retries=3, delay_seconds=2.0, sleep=sleeps.append).run()

    assert summary.new == 1
    assert summary.failed_terms == []
    assert client.searched == ["Pink Floyd"] * 3
    assert sleeps == [2.0, 2.0]


def test_temporary_failure_gives_up_after_max_retries(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient(failures={"Pink Floyd": [TemporaryFetchError("503")] * 5})

    summary = _pass(store, client, notifier, max_retries=2).run()

    assert client.searched == ["Pink Floyd"] * 2
    assert summary.failed_terms == ["Pink Floyd"]


def test_permanent_failure_is_not_retried(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient(failures={"Pink Floyd": [PermanentFetchError("HTTP 404")] * 3})

    _pass(store, client, notifier, max_retries=3).run()

    assert client.searched == ["Pink Floyd"]


def test_delay_between_terms(store, notifier) -> None:
    store.preferences = [artist_term("A"), artist_term("B"), album_term("C")]
    sleeps = []

    _pass(store, FakeClient(), notifier, delay_seconds=1.5, sleep=sleeps.append).run()

    assert sleeps == [1.5, 1.5]


def test_store_failure_affects_only_one_listing(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    store.fail_on = {"upsert_listing"}
    store.fail_keys = {_key("bad", "The Dark Side of the Moon")}
    client = FakeClient({"Pink Floyd": [candidate(seller="bad"), candidate(seller="good")]})

    summary = _pass(store, client, notifier).run()

    assert summary.new == 1
    assert [listing.seller for listing in notifier.batches[0]] == ["good"]
    assert len(summary.errors) == 1
    assert notifier.errors == [("Failed to save 1 listing(s)", "database")]
    assert list(store.listings) == [_key("good", "The Dark Side of the Moon")]


def test_store_failures_are_reported_once_per_pass(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd"), album_term("Animals")]
    store.fail_on = {"upsert_listing"}
    client = FakeClient({
        "Pink Floyd": [candidate(seller="a"), candidate(seller="b")],
        "Animals": [candidate(seller="c", title="Animals")],
    })

    summary = _pass(store, client, notifier).run()

    assert summary.store_failures == 3
    assert len(summary.errors) == 3
    assert notifier.errors == [("Failed to save 3 listing(s)", "database")]


def test_first_price_failure_still_alerts_once(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    store.fail_on = {"append_price_observation"}
    client = FakeClient({"Pink Floyd": [candidate()]})
    reconciliation_pass = _pass(store, client, notifier)

    first = reconciliation_pass.run()

    assert first.new == 1
    assert not first.success
    assert [len(batch) for batch in notifier.batches] == [1]
    assert notifier.errors == [("Failed to save 1 listing(s)", "database")]

    store.fail_on = set()
    second = reconciliation_pass.run()

    assert second.seen_again == 1 and second.new == 0
    assert [len(batch) for batch in notifier.batches] == [1, 0]


def test_failed_price_observation_is_recorded_next_pass(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(price="100")]})
    reconciliation_pass = _pass(store, client, notifier)
    reconciliation_pass.run()

    client.results["Pink Floyd"] = [candidate(price="120")]
    store.fail_on = {"append_price_observation"}
    failed = reconciliation_pass.run()

    key = _key("alice", "The Dark Side of the Moon")
    assert failed.price_changed == 0
    assert str(store.listings[key].price) == "100"

    store.fail_on = set()
    retried = reconciliation_pass.run()

    assert retried.price_changed == 1
    assert [str(obs.price) for obs in store.history] == ["100", "120"]
    assert str(store.listings[key].price) == "120"


def test_same_key_at_two_prices_in_one_pass_is_reconciled_once(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate(price="50"), candidate(price="80")]})
    reconciliation_pass = _pass(store, client, notifier)

    first = reconciliation_pass.run()
    second = reconciliation_pass.run()

    assert first.new == 1 and first.duplicates == 1
    assert second.seen_again == 1 and second.price_changed == 0 and second.duplicates == 1
    assert [str(obs.price) for obs in store.history] == ["50"]


def test_genre_only_terms_keep_listings_active(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = FakeClient({"Pink Floyd": [candidate()]})
    reconciliation_pass = _pass(store, client, notifier)
    reconciliation_pass.run()

    store.preferences = [genre_term("Rock")]
    summary = reconciliation_pass.run()

    assert summary.terms_searched == 0
    assert summary.deactivated == 0
    assert store.calls.count("mark_inactive_except") == 1
    assert all(listing.is_active for listing in store.listings.values())


def test_notification_failure_does_not_lose_state(store) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    notifier = FakeNotifier(fail=True)

    summary = _pass(store, FakeClient({"Pink Floyd": [candidate()]}), notifier).run()

    assert summary.new == 1
    assert len(store.listings) == 1
    assert any("Notification failed" in error for error in summary.errors)


def test_zero_terms_completes_without_outcomes(store, notifier) -> None:
    client = FakeClient()

    summary = _pass(store, client, notifier).run()

    assert summary.success
    assert summary.new == summary.seen_again == summary.price_changed == 0
    assert client.searched == []
    assert store.mutations == []
    assert notifier.batches == []


def test_preference_load_failure_is_reported(store, notifier) -> None:
    store.fail_on = {"list_preferences"}

    summary = _pass(store, FakeClient(), notifier).run()

    assert not summary.success
    assert notifier.errors == [("General scraping error occurred", "system")]


class BlockingClient(FakeClient):
    def __init__(self) -> None:
        super().__init__({"Pink Floyd": [candidate()]})
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_listings(self, term: str) -> list[dict]:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().fetch_listings(term)


def test_overlapping_run_is_skipped(store, notifier) -> None:
    store.preferences = [artist_term("Pink Floyd")]
    client = BlockingClient()
    reconciliation_pass = _pass(store, client, notifier)
    results = []

    worker = threading.Thread(target=lambda: results.append(reconciliation_pass.run()))
    worker.start()
    assert client.entered.wait(timeout=5)

    assert reconciliation_pass.is_running
    skipped = reconciliation_pass.run()
    with pytest.raises(PassAlreadyRunningError):
        reconciliation_pass.run(raise_if_running=True)

    client.release.set()
    worker.join(timeout=5)

    assert skipped.skipped and not skipped.success
    assert results[0].new == 1
    assert client.searched == ["Pink Floyd"]
    assert not reconciliation_pass.is_running


def test_seed_preferences_only_when_empty(store) -> None:
    preferences = PreferencesConfig(artists=["Pink Floyd"], genres=["Rock"], albums=["Abbey Road"])

    assert seed_preferences(store, preferences) == 3
    assert [term.type for term in store.preferences] == [
        PreferenceType.ARTIST,
        PreferenceType.GENRE,
        PreferenceType.ALBUM,
    ]
    assert seed_preferences(store, preferences) == 0
    assert len(store.preferences) == 3


def test_add_preference_skips_duplicates(store) -> None:
    assert add_preference(store, "artist", "  Pink   Floyd ")
    assert not add_preference(store, "artist", "pink floyd")
    assert add_preference(store, "album", "pink floyd")
    assert [term.value for term in store.preferences] == ["pink floyd", "pink floyd"]

    with pytest.raises(ValueError):
        add_preference(store, "artist", "   ")
