import logging

import pytest
from sqlalchemy import create_engine, text

from student_records.core.exceptions import PersistenceError, TransactionStateError
from student_records.core.session import TransactionState
from student_records.models.student import Student, StudentGroup


class TestTransactionStates:
    """NOT_STARTED -> ACTIVE -> {COMMITTED, ROLLED_BACK}"""

    def test_writes_require_begin(self, session):
        tx = session.transaction()
        assert tx.state is TransactionState.NOT_STARTED
        with pytest.raises(TransactionStateError):
            tx.persist_new(Student(name="Jack"))
        with pytest.raises(TransactionStateError):
            tx.commit()

    def test_begin_twice(self, session):
        tx = session.begin()
        with pytest.raises(TransactionStateError):
            tx.begin()

    def test_terminal_states_are_final(self, session):
        tx = session.begin()
        tx.commit()
        assert tx.state is TransactionState.COMMITTED
        with pytest.raises(TransactionStateError):
            tx.begin()
        with pytest.raises(TransactionStateError):
            tx.persist_new(Student(name="Jack"))
        tx.rollback()
        assert tx.state is TransactionState.COMMITTED

    def test_rollback_discards_staged_writes(self, session):
        tx = session.begin()
        tx.persist_new(Student(name="Jack"))
        tx.rollback()
        assert tx.state is TransactionState.ROLLED_BACK
        with pytest.raises(TransactionStateError):
            tx.commit()
        assert session.query(Student) == []

    def test_one_active_transaction_per_session(self, session):
        first = session.begin()
        with pytest.raises(TransactionStateError):
            session.begin()
        first.commit()
        session.begin().rollback()

    def test_closed_session_rejects_work(self, session):
        session.close()
        session.close()
        with pytest.raises(TransactionStateError):
            session.begin()
        with pytest.raises(TransactionStateError):
            session.query(Student)

    def test_close_rolls_back_active_transaction(self, factory, session):
        tx = session.begin()
        tx.persist_new(Student(name="Jack"))
        session.close()
        assert tx.state is TransactionState.ROLLED_BACK
        with factory.new_session() as other:
            assert other.query(Student) == []

    def test_context_manager_rolls_back_on_error(self, session):
        with pytest.raises(RuntimeError):
            with session.begin() as tx:
                tx.persist_new(Student(name="Jack"))
                raise RuntimeError("boom")
        assert tx.state is TransactionState.ROLLED_BACK
        assert session.query(Student) == []

    def test_context_manager_begins_not_started_transaction(self, session):
        with session.transaction() as tx:
            assert tx.state is TransactionState.ACTIVE
            tx.persist_new(Student(name="Jack"))
        assert tx.state is TransactionState.COMMITTED


class TestStagedWrites:

    def test_persist_new_populates_id_on_commit(self, session):
        jack = Student(name="Jack", student_group=StudentGroup.LOTUS)
        with session.begin() as tx:
            tx.persist_new(jack)
            assert jack.id is None
        assert jack.id is not None

    def test_staged_writes_invisible_to_other_sessions(self, factory, session):
        tx = session.begin()
        tx.persist_new(Student(name="Jack"))
        with factory.new_session() as other:
            assert other.query(Student) == []
        tx.commit()
        with factory.new_session() as other:
            assert [s.name for s in other.query(Student)] == ["Jack"]

    def test_fetched_entity_is_a_detached_value(self, session, jack_and_leslie):
        jack = session.find_by_id(Student, jack_and_leslie[0].id)
        jack.name = "Jacques"
        assert session.find_by_id(Student, jack.id).name == "Jack"

    def test_persist_update_snapshots_values(self, session, jack_and_leslie):
        jack = session.find_by_id(Student, jack_and_leslie[0].id)
        jack.student_group = StudentGroup.DAISY
        tx = session.begin()
        tx.persist_update(jack)
        jack.student_group = StudentGroup.TULIP
        tx.commit()
        assert session.find_by_id(Student, jack.id).student_group is StudentGroup.DAISY

    def test_update_same_value_twice_is_idempotent(self, session, jack_and_leslie):
        jack = session.find_by_id(Student, jack_and_leslie[0].id)
        jack.student_group = StudentGroup.DAISY
        for _ in range(2):
            with session.begin() as tx:
                tx.persist_update(jack)
        stored = session.find_by_id(Student, jack.id)
        assert (stored.name, stored.dob, stored.student_group) == (jack.name, jack.dob, StudentGroup.DAISY)

    def test_persist_new_rejects_persisted_entity(self, session, jack_and_leslie):
        jack = session.find_by_id(Student, jack_and_leslie[0].id)
        tx = session.begin()
        with pytest.raises(PersistenceError):
            tx.persist_new(jack)

    def test_persist_new_rejects_double_staging(self, session):
        jack = Student(name="Jack")
        tx = session.begin()
        tx.persist_new(jack)
        with pytest.raises(PersistenceError):
            tx.persist_new(jack)
        tx.commit()
        assert [s.name for s in session.query(Student)] == ["Jack"]

    def test_update_and_remove_require_id(self, session):
        tx = session.begin()
        with pytest.raises(PersistenceError):
            tx.persist_update(Student(name="Jack"))
        with pytest.raises(PersistenceError):
            tx.remove(Student(name="Jack"))

    def test_unmapped_object_is_rejected(self, session):
        tx = session.begin()
        with pytest.raises(TypeError):
            tx.persist_new(object())


class TestCommitFailures:

    def test_delete_is_final(self, session, jack_and_leslie):
        jack = jack_and_leslie[0]
        with session.begin() as tx:
            tx.remove(jack)
        assert session.find_by_id(Student, jack.id) is None

        tx = session.begin()
        tx.remove(jack)
        with pytest.raises(PersistenceError):
            tx.commit()
        assert tx.state is TransactionState.ROLLED_BACK

    def test_update_of_deleted_row_fails(self, session, jack_and_leslie):
        jack = session.find_by_id(Student, jack_and_leslie[0].id)
        with session.begin() as tx:
            tx.remove(jack)
        jack.name = "Ghost"
        tx = session.begin()
        tx.persist_update(jack)
        with pytest.raises(PersistenceError):
            tx.commit()
        assert session.find_by_id(Student, jack.id) is None

    def test_failed_write_undoes_earlier_writes(self, session, jack_and_leslie):
        jack, leslie = jack_and_leslie
        leslie.student_group = StudentGroup.ORCHID
        newcomer = Student(name="Dana", student_group=StudentGroup.DAISY)

        tx = session.begin()
        tx.persist_new(newcomer)
        tx.persist_update(leslie)
        tx.remove(jack)
        tx.remove(Student(id=9999, name="Nobody"))
        with pytest.raises(PersistenceError):
            tx.commit()

        assert newcomer.id is None
        assert session.find_by_id(Student, jack.id) is not None
        assert session.find_by_id(Student, leslie.id).student_group is StudentGroup.ROSE
        assert sorted(s.name for s in session.query(Student)) == ["Jack", "Leslie"]

    def test_duplicate_id_fails_commit(self, session, jack_and_leslie):
        first = Student(name="Dana")
        duplicate = Student(id=jack_and_leslie[0].id, name="Impostor")
        tx = session.begin()
        tx.persist_new(first)
        tx.persist_new(duplicate)
        with pytest.raises(PersistenceError) as exc_info:
            tx.commit()
        assert exc_info.value.status_code == 409
        assert first.id is None
        assert duplicate.id == jack_and_leslie[0].id
        assert len(session.query(Student)) == 2

        # The rolled back entity can be staged again
        with session.begin() as retry:
            retry.persist_new(first)
        assert first.id is not None

    def test_ids_are_not_reused(self, session, jack_and_leslie):
        leslie = jack_and_leslie[1]
        with session.begin() as tx:
            tx.remove(leslie)
        dana = Student(name="Dana")
        with session.begin() as tx:
            tx.persist_new(dana)
        assert dana.id > leslie.id


class TestStorageFormat:

    def test_group_is_stored_as_text(self, db_url, jack_and_leslie):
        engine = create_engine(db_url)
        with engine.connect() as connection:
            rows = connection.execute(text("SELECT name, student_group FROM students ORDER BY id")).all()
        engine.dispose()
        assert [tuple(row) for row in rows] == [("Jack", "LOTUS"), ("Leslie", "ROSE")]

    def test_group_rejects_free_text(self):
        with pytest.raises(ValueError):
            Student(name="Jack", student_group="SUNFLOWER")

    def test_group_accepts_member_name(self):
        assert Student(name="Jack", student_group="DAISY").student_group is StudentGroup.DAISY

    def test_commit_is_logged(self, session, caplog):
        with caplog.at_level(logging.INFO, logger="student_records.core.session"):
            with session.begin() as tx:
                tx.persist_new(Student(name="Jack"))
        assert "Transaction committed (1 writes)" in caplog.text
