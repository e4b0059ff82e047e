"""Unit tests for festival/store.py -- lineup, groups, rankings, settings, avatars.

Covers:
- add_artists() partitions added/skipped in input order
- delete_artist() cascades to rankings and group memberships across years
- group status: at most one holder per (year, status); clearing keeps others
- set_ranking(): range check, single row per (user, artist), unknown artist
- get_aggregate_rankings(): None (not 0) for unrated artists, sort order
- settings upsert and the active-year fallback
- upserts that lose a race to a concurrent writer retry once and converge
- avatar catalog CRUD
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from core.errors import ArtistNotFound, InvalidGroupName, ScoreOutOfRange
from festival.models import AvatarImage, GroupStatus
from festival.store import FestivalStore, _groups, _rankings, _settings


@pytest.fixture
def store():
    s = FestivalStore("sqlite:///:memory:")
    yield s
    s.close()


def _ids(store: FestivalStore, year: int) -> dict[str, int]:
    return {a.name: a.id for a in store.get_artists_by_year(year)}


class TestArtists:
    def test_bulk_add_partitions_in_input_order(self, store: FestivalStore) -> None:
        store.add_artists(["Tycho", "Bonobo"], 2025)
        result = store.add_artists(["  Odesza ", "", "Bonobo", "Caribou", "Tycho", "Odesza"], 2025)
        assert result.added == ["Odesza", "Caribou"]
        assert result.skipped == ["Bonobo", "Tycho", "Odesza"]

    def test_same_name_in_another_year_is_added(self, store: FestivalStore) -> None:
        store.add_artists(["Tycho"], 2024)
        result = store.add_artists(["Tycho"], 2025)
        assert result.added == ["Tycho"]
        assert store.get_years_with_artists() == [2025, 2024]

    def test_artists_by_year_sorted_by_name(self, store: FestivalStore) -> None:
        store.add_artists(["Zedd", "Autograf", "Mura Masa"], 2025)
        assert [a.name for a in store.get_artists_by_year(2025)] == ["Autograf", "Mura Masa", "Zedd"]

    def test_delete_artist_cascades(self, store: FestivalStore) -> None:
        store.add_artists(["Tycho", "Bonobo"], 2025)
        store.add_artists(["Tycho"], 2024)
        ids = _ids(store, 2025)
        other_year_id = _ids(store, 2024)["Tycho"]
        g25 = store.create_group("Sunset", 2025, [ids["Tycho"], ids["Bonobo"]])
        g24 = store.create_group("Legacy", 2024, [other_year_id, ids["Tycho"]])
        store.set_ranking(1, ids["Tycho"], 8)
        store.set_ranking(2, ids["Tycho"], 6)
        store.set_ranking(1, ids["Bonobo"], 9)

        assert store.delete_artist(ids["Tycho"]) is True

        assert store.get_artist(ids["Tycho"]) is None
        assert store.list_rankings_for_artist(ids["Tycho"]) == []
        assert store.get_group(g25.id).artist_ids == [ids["Bonobo"]]
        assert store.get_group(g24.id).artist_ids == [other_year_id], "pruned from groups in every year"
        assert store.get_ranking(1, ids["Bonobo"]).score == 9

    def test_delete_missing_artist(self, store: FestivalStore) -> None:
        assert store.delete_artist(12345) is False


class TestGroups:
    def test_groups_keep_insertion_order(self, store: FestivalStore) -> None:
        for name in ("Friday", "Saturday", "Sunday"):
            store.create_group(name, 2025, [])
        groups = store.get_groups_by_year(2025)
        assert [g.name for g in groups] == ["Friday", "Saturday", "Sunday"]
        assert [g.order for g in groups] == [0, 1, 2]

    def test_blank_name_rejected(self, store: FestivalStore) -> None:
        with pytest.raises(InvalidGroupName):
            store.create_group("  ", 2025, [])

    def test_status_moves_to_new_holder(self, store: FestivalStore) -> None:
        a = store.create_group("A", 2025, [], status=GroupStatus.current)
        b = store.create_group("B", 2025, [], status=GroupStatus.current)
        assert store.get_group(a.id).status is None
        assert store.get_group(b.id).status is GroupStatus.current

    def test_status_is_per_year(self, store: FestivalStore) -> None:
        a = store.create_group("A", 2024, [], status=GroupStatus.next)
        store.create_group("B", 2025, [], status=GroupStatus.next)
        assert store.get_group(a.id).status is GroupStatus.next

    def test_update_status_clears_previous_holder(self, store: FestivalStore) -> None:
        a = store.create_group("A", 2025, [], status=GroupStatus.next)
        b = store.create_group("B", 2025, [])
        store.update_group(b.id, status=GroupStatus.next)
        holders = [g.name for g in store.get_groups_by_year(2025) if g.status is GroupStatus.next]
        assert holders == ["B"]
        assert store.get_group(a.id).status is None

    def test_update_to_none_clears_only_that_group(self, store: FestivalStore) -> None:
        a = store.create_group("A", 2025, [], status=GroupStatus.current)
        b = store.create_group("B", 2025, [], status=GroupStatus.next)
        store.update_group(a.id, status=None)
        assert store.get_group(a.id).status is None
        assert store.get_group(b.id).status is GroupStatus.next

    def test_update_leaves_unnamed_fields(self, store: FestivalStore) -> None:
        g = store.create_group("A", 2025, [1, 2], status=GroupStatus.current)
        updated = store.update_group(g.id, name="Renamed")
        assert updated.name == "Renamed"
        assert updated.artist_ids == [1, 2]
        assert updated.status is GroupStatus.current

    def test_update_missing_group(self, store: FestivalStore) -> None:
        assert store.update_group(999, name="x") is None

    def test_delete_group(self, store: FestivalStore) -> None:
        g = store.create_group("A", 2025, [])
        assert store.delete_group(g.id) is True
        assert store.delete_group(g.id) is False


class TestRankings:
    @pytest.fixture
    def artist_id(self, store: FestivalStore) -> int:
        store.add_artists(["Tycho"], 2025)
        return _ids(store, 2025)["Tycho"]

    @pytest.mark.parametrize("score", [0, 11, -3, 100])
    def test_out_of_range_writes_nothing(self, store: FestivalStore, artist_id: int, score: int) -> None:
        with pytest.raises(ScoreOutOfRange):
            store.set_ranking(1, artist_id, score)
        assert store.get_ranking(1, artist_id) is None

    def test_out_of_range_keeps_existing_score(self, store: FestivalStore, artist_id: int) -> None:
        store.set_ranking(1, artist_id, 4)
        with pytest.raises(ScoreOutOfRange):
            store.set_ranking(1, artist_id, 11)
        assert store.get_ranking(1, artist_id).score == 4

    def test_boundaries_accepted(self, store: FestivalStore, artist_id: int) -> None:
        assert store.set_ranking(1, artist_id, 1).score == 1
        assert store.set_ranking(1, artist_id, 10).score == 10

    def test_unknown_artist(self, store: FestivalStore) -> None:
        with pytest.raises(ArtistNotFound):
            store.set_ranking(1, 404, 5)

    def test_repeat_set_keeps_one_row(self, store: FestivalStore, artist_id: int) -> None:
        first = store.set_ranking(1, artist_id, 7)
        second = store.set_ranking(1, artist_id, 7)
        with store.engine.connect() as conn:
            count = conn.execute(select(func.count()).select_from(_rankings)).scalar()
        assert count == 1
        assert second.id == first.id
        assert second.updated_at >= first.updated_at

    def test_unique_constraint_backs_the_upsert(self, store: FestivalStore, artist_id: int) -> None:
        store.set_ranking(1, artist_id, 5)
        with pytest.raises(IntegrityError):
            with store.engine.begin() as conn:
                conn.execute(_rankings.insert().values(user_id=1, artist_id=artist_id, score=3, updated_at="x"))

    def test_clear_ranking(self, store: FestivalStore, artist_id: int) -> None:
        store.set_ranking(1, artist_id, 5)
        assert store.clear_ranking(1, artist_id) is True
        assert store.clear_ranking(1, artist_id) is False

    def test_user_rankings_for_year_filters_by_year(self, store: FestivalStore) -> None:
        store.add_artists(["Tycho"], 2024)
        store.add_artists(["Bonobo"], 2025)
        old = _ids(store, 2024)["Tycho"]
        new = _ids(store, 2025)["Bonobo"]
        store.set_ranking(1, old, 3)
        store.set_ranking(1, new, 9)
        store.set_ranking(2, new, 2)
        assert store.get_user_rankings_for_year(1, 2025) == {new: 9}
        assert store.get_user_rankings_for_year(1, 2023) == {}

    def test_aggregate(self, store: FestivalStore) -> None:
        store.add_artists(["Bonobo", "Caribou", "Tycho", "Autograf"], 2025)
        ids = _ids(store, 2025)
        store.set_ranking(1, ids["Tycho"], 8)
        store.set_ranking(2, ids["Tycho"], 5)
        store.set_ranking(1, ids["Bonobo"], 9)
        store.set_ranking(1, ids["Caribou"], 6)
        store.set_ranking(2, ids["Caribou"], 7)

        rows = store.get_aggregate_rankings(2025)
        assert [r.name for r in rows] == ["Bonobo", "Caribou", "Tycho", "Autograf"]
        tycho = next(r for r in rows if r.name == "Tycho")
        assert tycho.avg_score == pytest.approx(6.5)
        assert tycho.rating_count == 2
        unrated = rows[-1]
        assert unrated.avg_score is None, "no ratings means None, never 0"
        assert unrated.rating_count == 0

    def test_aggregate_empty_year(self, store: FestivalStore) -> None:
        assert store.get_aggregate_rankings(1999) == []

    def test_delete_and_restore_rankings_for_user(self, store: FestivalStore, artist_id: int) -> None:
        store.set_ranking(1, artist_id, 6)
        store.set_ranking(2, artist_id, 3)
        removed = store.delete_rankings_for_user(1)
        assert [r.score for r in removed] == [6]
        assert store.get_ranking(1, artist_id) is None

        assert store.restore_rankings(removed) == 1
        assert store.get_ranking(1, artist_id).score == 6


class TestSettings:
    def test_active_year_defaults_to_current_year(self, store: FestivalStore) -> None:
        assert store.get_active_year() == datetime.now(timezone.utc).year

    def test_set_active_year_upserts(self, store: FestivalStore) -> None:
        store.set_active_year(2024)
        store.set_active_year(2026)
        assert store.get_active_year() == 2026

    def test_setting_values_are_json(self, store: FestivalStore) -> None:
        store.set_setting("theme", {"dark": True})
        assert store.get_setting("theme") == {"dark": True}
        assert store.get_setting("missing") is None


class TestAvatarCatalog:
    def test_crud(self, store: FestivalStore) -> None:
        avatar_id = store.create_avatar(AvatarImage(storage_id="s1", name="Koala"))
        store.create_avatar(AvatarImage(storage_id="s2", name="Emu"))
        assert [a.name for a in store.list_avatars()] == ["Koala", "Emu"]
        assert store.get_avatar_by_storage_id("s1").id == avatar_id

        assert store.rename_avatar(avatar_id, "Wombat") is True
        assert store.get_avatar(avatar_id).name == "Wombat"

        deleted = store.delete_avatar(avatar_id)
        assert deleted.storage_id == "s1"
        assert store.delete_avatar(avatar_id) is None
        assert store.rename_avatar(avatar_id, "x") is False

    def test_duplicate_storage_id(self, store: FestivalStore) -> None:
        store.create_avatar(AvatarImage(storage_id="s1", name="Koala"))
        with pytest.raises(IntegrityError):
            store.create_avatar(AvatarImage(storage_id="s1", name="Again"))


def _collision() -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))


@contextmanager
def _concurrent_writer(store: FestivalStore, competitor):
    """Make the store's first transaction collide with `competitor`.

    The competing write commits on its own connection, then the first
    engine.begin() fails the way a lost UNIQUE race does. Later
    transactions run normally. Yields the list of begin() calls.
    """
    real_begin = store.engine.begin
    calls: list[int] = []

    @contextmanager
    def begin():
        calls.append(len(calls))
        if len(calls) == 1:
            with real_begin() as conn:
                competitor(conn)
            raise _collision()
        with real_begin() as conn:
            yield conn

    with patch.object(store.engine, "begin", begin):
        yield calls


class TestUpsertRaces:
    def test_set_ranking_updates_the_winning_row(self, store: FestivalStore) -> None:
        store.add_artists(["Tycho"], 2025)
        artist_id = _ids(store, 2025)["Tycho"]

        def rival(conn) -> None:
            conn.execute(_rankings.insert().values(user_id=1, artist_id=artist_id, score=2, updated_at="2025-01-01"))

        with _concurrent_writer(store, rival) as calls:
            ranking = store.set_ranking(1, artist_id, 9)

        assert len(calls) == 2
        assert ranking.score == 9
        assert [r.score for r in store.list_rankings_for_user(1)] == [9]

    def test_set_ranking_gives_up_after_second_collision(self, store: FestivalStore) -> None:
        store.add_artists(["Tycho"], 2025)
        artist_id = _ids(store, 2025)["Tycho"]
        with patch.object(store.engine, "begin", side_effect=_collision()) as begin:
            with pytest.raises(IntegrityError):
                store.set_ranking(1, artist_id, 9)
        assert begin.call_count == 2
        assert store.get_ranking(1, artist_id) is None

    def test_set_setting_overwrites_the_winning_row(self, store: FestivalStore) -> None:
        def rival(conn) -> None:
            conn.execute(_settings.insert().values(key="activeYear", value="2020"))

        with _concurrent_writer(store, rival) as calls:
            store.set_active_year(2026)

        assert len(calls) == 2
        assert store.get_active_year() == 2026
        with store.engine.connect() as conn:
            assert conn.execute(select(func.count()).select_from(_settings)).scalar() == 1

    def test_create_group_takes_status_from_racing_holder(self, store: FestivalStore) -> None:
        def rival(conn) -> None:
            conn.execute(
                _groups.insert().values(name="Rival", year=2025, artist_ids="[]", status="current", sort_order=0)
            )

        with _concurrent_writer(store, rival) as calls:
            mine = store.create_group("Mine", 2025, [], status=GroupStatus.current)

        assert len(calls) == 2
        statuses = {g.name: g.status for g in store.get_groups_by_year(2025)}
        assert statuses == {"Rival": None, "Mine": GroupStatus.current}
        assert mine.order == 1

    def test_update_group_takes_status_from_racing_holder(self, store: FestivalStore) -> None:
        target = store.create_group("Target", 2025, [])

        def rival(conn) -> None:
            conn.execute(
                _groups.insert().values(name="Rival", year=2025, artist_ids="[]", status="next", sort_order=1)
            )

        with _concurrent_writer(store, rival) as calls:
            updated = store.update_group(target.id, status=GroupStatus.next)

        assert len(calls) == 2
        assert updated.status is GroupStatus.next
        statuses = {g.name: g.status for g in store.get_groups_by_year(2025)}
        assert statuses == {"Target": GroupStatus.next, "Rival": None}
