"""
Tests for the record store facade.

Covers the observable contract: empty stores, lookups by attribute,
delete-then-save, bulk removal, asynchronous fetches and the error
paths that degrade to ``None`` / ``False`` or surface as results.
"""

import logging
import sqlite3
import threading
from decimal import Decimal
from unittest.mock import patch

import pytest

from recordstore.errors import (
    CommitError,
    InvalidQueryValueError,
    QueryError,
    UnknownAttributeError,
    UnknownRecordTypeError,
)
from recordstore.models.enums import StoreErrorCode
from recordstore.models.result_models import StoreResult
from recordstore.schema import RecordSchema
from tests.records import OWNER, VEHICLE, FuelType, Owner, Vehicle


def _protect_table(store_path, table):
    """Install a trigger that makes every DELETE on *table* fail."""
    conn = sqlite3.connect(str(store_path))
    try:
        conn.execute(
            f'CREATE TRIGGER "protect_{table}" BEFORE DELETE ON "{table}" '
            "BEGIN SELECT RAISE(ABORT, 'rows are protected'); END"
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def fleet(repo):
    return [
        repo.insert(VEHICLE, Vehicle(registration="AB-123", make="Volvo", year=2015)),
        repo.insert(VEHICLE, Vehicle(registration="CD-456", make="Saab", fuel=FuelType.DIESEL)),
        repo.insert(VEHICLE, Vehicle(registration="EF-789", make="Volvo", insured=True)),
    ]


@pytest.fixture
def owners(repo):
    return [
        repo.insert(OWNER, Owner(owner_id="O-1", name="Ada", registrations=["AB-123"])),
        repo.insert(OWNER, Owner(owner_id="O-2", name="Grace")),
    ]


class TestEmptyStore:

    def test_fetch_all_returns_empty_list(self, repo):
        assert repo.fetch_all(VEHICLE) == []

    def test_exists_is_false(self, repo):
        assert repo.exists(VEHICLE, "registration", "AB-123") is False

    def test_fetch_one_is_none(self, repo):
        assert repo.fetch_one(VEHICLE, "registration", "AB-123") is None


class TestFetch:

    def test_fetch_all_returns_records_in_store_order(self, repo, fleet):
        records = repo.fetch_all(VEHICLE)
        assert [v.registration for v in records] == ["AB-123", "CD-456", "EF-789"]
        assert records[1].fuel is FuelType.DIESEL
        assert records[2].insured is True

    def test_fetch_one_by_attribute_name(self, repo, fleet):
        vehicle = repo.fetch_one(VEHICLE, "registration", "CD-456")
        assert vehicle == fleet[1]

    def test_fetch_one_by_attribute_object(self, repo, fleet):
        vehicle = repo.fetch_one(VEHICLE, VEHICLE["make"], "Volvo")
        assert vehicle.registration == "AB-123"

    def test_fetch_one_miss(self, repo, fleet):
        assert repo.fetch_one(VEHICLE, "registration", "ZZ-000") is None

    def test_exists_hit_and_miss(self, repo, fleet):
        assert repo.exists(VEHICLE, "registration", "EF-789") is True
        assert repo.exists(VEHICLE, "registration", "ZZ-000") is False

    def test_lookup_by_equal_decimal(self, repo):
        repo.insert(OWNER, Owner(owner_id="O-3", name="Edsger", balance=Decimal("12.50")))
        found = repo.fetch_one(OWNER, "balance", Decimal("12.5"))
        assert found is not None and found.owner_id == "O-3"
        assert found.balance == Decimal("12.50")
        assert repo.exists(OWNER, "balance", "12.500") is True

    def test_exists_on_explicit_context(self, repo, store, fleet):
        background = store["manager"].new_background_context()
        try:
            found = background.perform(
                lambda ctx: repo.exists(VEHICLE, "registration", "AB-123", context=ctx)
            ).result(timeout=5)
        finally:
            background.close()
        assert found is True

    def test_json_and_decimal_fields_survive(self, repo, owners):
        ada = repo.fetch_one(OWNER, "owner_id", "O-1")
        assert ada.registrations == ["AB-123"]
        assert ada == owners[0]

    def test_lookup_by_null(self, repo, fleet):
        vehicle = repo.fetch_one(VEHICLE, "year", None)
        assert vehicle.registration == "CD-456"


class TestProgrammingErrors:

    def test_unknown_attribute_raises(self, repo):
        with pytest.raises(UnknownAttributeError):
            repo.fetch_one(VEHICLE, "vin", "X")
        with pytest.raises(UnknownAttributeError):
            repo.exists(VEHICLE, OWNER["owner_id"], "O-1")

    def test_wrongly_typed_identifier_raises(self, repo):
        with pytest.raises(InvalidQueryValueError):
            repo.exists(VEHICLE, "year", "not-a-year")

    def test_unregistered_type_raises(self, repo):
        class Trailer(Vehicle):
            pass

        with pytest.raises(UnknownRecordTypeError):
            repo.fetch_all(RecordSchema(Trailer))


class TestDelete:

    def test_delete_then_lookup_misses(self, repo, fleet):
        assert repo.delete(VEHICLE, "registration", "CD-456") is True

        assert repo.fetch_one(VEHICLE, "registration", "CD-456") is None
        assert repo.exists(VEHICLE, "registration", "CD-456") is False
        assert len(repo.fetch_all(VEHICLE)) == 2

    def test_delete_is_saved(self, repo, store, fleet):
        repo.delete(VEHICLE, "registration", "AB-123")

        assert store["manager"].primary_context.has_changes is False
        still_there = store["manager"].perform_background_task(
            lambda ctx: repo.exists(VEHICLE, "registration", "AB-123", context=ctx)
        ).result(timeout=5)
        assert still_there is False

    def test_delete_removes_only_first_match(self, repo, fleet):
        assert repo.delete(VEHICLE, "make", "Volvo") is True
        assert [v.registration for v in repo.fetch_all(VEHICLE)] == ["CD-456", "EF-789"]

    def test_delete_nonexistent_leaves_store_unchanged(self, repo, fleet):
        before = repo.fetch_all(VEHICLE)
        assert repo.delete(VEHICLE, "registration", "ZZ-000") is False
        assert repo.fetch_all(VEHICLE) == before

    def test_delete_commit_failure_raises_and_rolls_back(self, repo, store, fleet):
        primary = store["manager"].primary_context

        def _failing_save(ctx):
            ctx.rollback()
            raise CommitError("disk full", ctx.name)

        with patch.object(type(primary), "save", side_effect=_failing_save, autospec=True):
            with pytest.raises(CommitError):
                repo.delete(VEHICLE, "registration", "AB-123")

        assert primary.has_changes is False
        assert repo.exists(VEHICLE, "registration", "AB-123") is True

    def test_delete_statement_failure_keeps_pending_changes(self, repo, store, fleet):
        _protect_table(store["manager"].store_path, "vehicle")
        repo.insert(OWNER, Owner(owner_id="O-9", name="Linus"), save=False)

        with pytest.raises(QueryError):
            repo.delete(VEHICLE, "registration", "AB-123")

        primary = store["manager"].primary_context
        assert primary.has_changes is True
        repo.save_context()
        assert repo.exists(VEHICLE, "registration", "AB-123") is True
        assert repo.exists(OWNER, "owner_id", "O-9") is True


class TestDeleteAll:

    def test_removes_every_record_of_type(self, repo, fleet, owners):
        result = repo.delete_all(VEHICLE)

        assert result.success is True
        assert result.data == 3
        assert repo.fetch_all(VEHICLE) == []
        assert len(repo.fetch_all(OWNER)) == 2

    def test_empty_type(self, repo):
        result = repo.delete_all(VEHICLE)
        assert result.success is True
        assert result.data == 0

    def test_completion_receives_none_on_success(self, repo, fleet):
        received = []
        repo.delete_all(VEHICLE, completion=received.append)
        assert received == [None]

    def test_query_failure_reported_in_result(self, repo, store, fleet):
        primary = store["manager"].primary_context
        received = []
        with patch.object(
            type(primary),
            "execute_batch_delete",
            side_effect=QueryError("database is locked", "Vehicle"),
            autospec=True,
        ):
            result = repo.delete_all(VEHICLE, completion=received.append)

        assert result.success is False
        assert result.error_code is StoreErrorCode.QUERY_FAILED
        assert isinstance(received[0], QueryError)
        assert len(repo.fetch_all(VEHICLE)) == 3

    def test_commit_failure_reported_in_result(self, repo, store, fleet):
        primary = store["manager"].primary_context

        def _failing_save(ctx):
            ctx.rollback()
            raise CommitError("disk full", ctx.name)

        with patch.object(type(primary), "save", side_effect=_failing_save, autospec=True):
            result = repo.delete_all(VEHICLE)

        assert result.success is False
        assert result.error_code is StoreErrorCode.COMMIT_FAILED
        assert len(repo.fetch_all(VEHICLE)) == 3


class TestReadFailures:

    def test_fetch_all_logs_and_returns_none(self, repo, store, fleet, caplog):
        primary = store["manager"].primary_context
        with patch.object(
            type(primary), "fetch", side_effect=QueryError("no such table", "Vehicle"), autospec=True,
        ):
            with caplog.at_level(logging.ERROR, logger="recordstore.repository"):
                assert repo.fetch_all(VEHICLE) is None

        assert "Error while fetching the values for fetch_all (Vehicle)" in caplog.text

    def test_exists_failure_returns_false(self, repo, store, fleet, caplog):
        primary = store["manager"].primary_context
        with patch.object(
            type(primary), "count", side_effect=QueryError("no such table", "Vehicle"), autospec=True,
        ):
            with caplog.at_level(logging.ERROR, logger="recordstore.repository"):
                assert repo.exists(VEHICLE, "registration", "AB-123") is False

        assert "exists (Vehicle)" in caplog.text

    def test_fetch_one_failure_returns_none(self, repo, store, fleet):
        primary = store["manager"].primary_context
        with patch.object(
            type(primary), "fetch", side_effect=QueryError("no such table", "Vehicle"), autospec=True,
        ):
            assert repo.fetch_one(VEHICLE, "registration", "AB-123") is None


class TestFetchAllAsync:

    def test_completion_runs_before_future_resolves(self, repo, store, fleet):
        events = []
        threads = []

        def _completion(records):
            threads.append(threading.get_ident())
            events.append(("completion", [v.registration for v in records]))

        future = repo.fetch_all_async(VEHICLE, completion=_completion)
        future.add_done_callback(lambda f: events.append(("resolved", None)))
        records = future.result(timeout=5)

        assert [v.registration for v in records] == ["AB-123", "CD-456", "EF-789"]
        assert events[0] == ("completion", ["AB-123", "CD-456", "EF-789"])
        assert threads[0] != threading.get_ident()
        assert store["manager"].background_context_count == 0

    def test_sees_latest_saved_state(self, repo, fleet):
        repo.delete(VEHICLE, "registration", "AB-123")
        records = repo.fetch_all_async(VEHICLE).result(timeout=5)
        assert [v.registration for v in records] == ["CD-456", "EF-789"]

    def test_primary_write_during_background_fetch(self, repo, fleet):
        fetched = threading.Event()
        release = threading.Event()
        completed = threading.Event()
        seen_in_background = []

        def _completion(records):
            seen_in_background.extend(v.registration for v in records)
            fetched.set()
            assert release.wait(timeout=5)
            completed.set()

        future = repo.fetch_all_async(VEHICLE, completion=_completion)
        assert fetched.wait(timeout=5)

        writer = threading.Thread(
            target=lambda: repo.insert(VEHICLE, Vehicle(registration="GH-012")),
            name="primary-writer",
        )
        writer.start()
        writer.join(timeout=5)
        assert not writer.is_alive()
        assert not future.done()

        release.set()
        assert completed.wait(timeout=5)
        future.result(timeout=5)

        assert seen_in_background == ["AB-123", "CD-456", "EF-789"]
        assert [v.registration for v in repo.fetch_all(VEHICLE)] == [
            "AB-123", "CD-456", "EF-789", "GH-012",
        ]

    def test_failed_fetch_completes_with_none(self, repo, store, fleet):
        received = []
        with patch("recordstore.context.ExecutionContext.fetch", side_effect=QueryError("boom", "Vehicle")):
            result = repo.fetch_all_async(VEHICLE, completion=received.append).result(timeout=5)

        assert result is None
        assert received == [None]

    def test_completion_error_propagates_through_future(self, repo):
        def _completion(records):
            raise RuntimeError("handler failed")

        with pytest.raises(RuntimeError):
            repo.fetch_all_async(VEHICLE, completion=_completion).result(timeout=5)


class TestInsert:

    def test_insert_assigns_ids(self, repo, fleet):
        assert all(vehicle.is_persisted for vehicle in fleet)
        assert len({vehicle.id for vehicle in fleet}) == 3

    def test_failed_insert_releases_the_store(self, repo, store):
        first = repo.insert(VEHICLE, Vehicle(registration="AB-123"))
        with pytest.raises(QueryError):
            repo.insert(VEHICLE, Vehicle(id=first.id, registration="DUP"))

        primary = store["manager"].primary_context
        assert primary.has_changes is False
        assert primary.in_transaction is False

        def _background_write(ctx):
            ctx.insert(VEHICLE, Vehicle(registration="BG-1"))
            return ctx.save()

        assert store["manager"].perform_background_task(_background_write).result(timeout=5) is True
        assert [v.registration for v in repo.fetch_all(VEHICLE)] == ["AB-123", "BG-1"]


class TestSaveContext:

    def test_save_context_commits_pending_insert(self, repo, store):
        repo.insert(VEHICLE, Vehicle(registration="AB-123"), save=False)
        assert store["manager"].primary_context.has_changes is True

        repo.save_context()
        assert store["manager"].primary_context.has_changes is False
        assert repo.fetch_all_async(VEHICLE).result(timeout=5)[0].registration == "AB-123"


class TestDeleteStoreFile:

    def test_delete_then_missing(self, repo, store, store_file):
        store["manager"].close()

        first = repo.delete_store_file()
        assert first.success is True
        assert not store_file.exists()

        for _ in range(2):
            again = repo.delete_store_file()
            assert again.success is False
            assert again.error_code is StoreErrorCode.FILE_DOES_NOT_EXIST

    def test_warns_when_store_still_open(self, repo, store, store_file, caplog):
        with patch.object(store["store_files"], "delete_store_file", return_value=StoreResult.ok()):
            with caplog.at_level(logging.WARNING, logger="recordstore.repository"):
                assert repo.delete_store_file().success is True
        assert "still open" in caplog.text
