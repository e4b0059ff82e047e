"""Unit tests for festival/cascade.py -- deleting a user across both stores.

Covers:
- happy path: rankings, sessions and the user row all go
- unknown user: nothing is touched
- failure in the auth store: removed rankings are restored, error propagates
- sessions are revoked before rankings are touched
- a ranking write that lands mid-deletion is swept once the user is gone
"""

from unittest.mock import patch

import pytest

from auth.accounts import register
from auth.models import Session
from auth.store import UserStore
from core.errors import UserNotFound
from festival.cascade import delete_user_cascade
from festival.store import FestivalStore


@pytest.fixture
def stores():
    user_store = UserStore("sqlite:///:memory:")
    festival = FestivalStore("sqlite:///:memory:")
    yield user_store, festival
    user_store.close()
    festival.close()


def _seed(user_store: UserStore, festival: FestivalStore) -> tuple[int, int, list[int]]:
    alice = register(user_store, "alice", "secret1")
    bob = register(user_store, "bob", "secret1")
    festival.add_artists(["Tycho", "Bonobo"], 2025)
    artist_ids = [a.id for a in festival.get_artists_by_year(2025)]
    for artist_id in artist_ids:
        festival.set_ranking(alice.id, artist_id, 8)
        festival.set_ranking(bob.id, artist_id, 4)
    user_store.create_session(Session(user_id=alice.id, token="alice-tok", expires_at="2099-01-01T00:00:00+00:00"))
    return alice.id, bob.id, artist_ids


def test_delete_user_removes_everything(stores):
    user_store, festival = stores
    alice_id, bob_id, artist_ids = _seed(user_store, festival)

    assert delete_user_cascade(user_store, festival, alice_id) == 2

    assert user_store.get_by_id(alice_id) is None
    assert user_store.get_session("alice-tok") is None
    assert festival.list_rankings_for_user(alice_id) == []
    assert len(festival.list_rankings_for_user(bob_id)) == 2, "other users' rankings survive"


def test_unknown_user_touches_nothing(stores):
    user_store, festival = stores
    alice_id, _, _ = _seed(user_store, festival)
    with pytest.raises(UserNotFound):
        delete_user_cascade(user_store, festival, 999)
    assert len(festival.list_rankings_for_user(alice_id)) == 2


def test_auth_store_failure_restores_rankings(stores):
    user_store, festival = stores
    alice_id, _, artist_ids = _seed(user_store, festival)

    with patch.object(user_store, "delete_user", side_effect=RuntimeError("disk full")):
        with pytest.raises(RuntimeError, match="disk full"):
            delete_user_cascade(user_store, festival, alice_id)

    assert user_store.get_by_id(alice_id) is not None
    restored = {r.artist_id: r.score for r in festival.list_rankings_for_user(alice_id)}
    assert restored == {artist_id: 8 for artist_id in artist_ids}


def test_sessions_are_revoked_before_rankings_go(stores):
    user_store, festival = stores
    alice_id, _, _ = _seed(user_store, festival)
    seen_sessions = []
    original = festival.delete_rankings_for_user

    def spy(user_id):
        seen_sessions.append(len(user_store.list_sessions(user_id)))
        return original(user_id)

    with patch.object(festival, "delete_rankings_for_user", side_effect=spy):
        delete_user_cascade(user_store, festival, alice_id)

    assert seen_sessions and all(count == 0 for count in seen_sessions)


def test_ranking_written_mid_deletion_is_swept(stores):
    user_store, festival = stores
    alice_id, bob_id, artist_ids = _seed(user_store, festival)
    original = user_store.delete_user

    def write_then_delete(user_id):
        # A request that authenticated before the sessions were revoked
        # finishes its write after the first rankings pass.
        festival.set_ranking(user_id, artist_ids[0], 9)
        return original(user_id)

    with patch.object(user_store, "delete_user", side_effect=write_then_delete):
        assert delete_user_cascade(user_store, festival, alice_id) == 3

    assert festival.list_rankings_for_user(alice_id) == []
    aggregate = {row.artist_id: row for row in festival.get_aggregate_rankings(2025)}
    assert aggregate[artist_ids[0]].rating_count == 1
    assert aggregate[artist_ids[0]].avg_score == 4
    assert len(festival.list_rankings_for_user(bob_id)) == 2
