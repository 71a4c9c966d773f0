import threading

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.crud.crud_capacity import capacity_ledger
from app.db.base_class import Base
from app.models.workshop import Workshop
from tests.utils.factories import make_registration, make_workshop


def test_reserve_takes_seats_until_full(db):
    workshop = make_workshop(db, capacity=2)

    assert capacity_ledger.reserve(db, workshop_id=workshop.id) is True
    assert capacity_ledger.reserve(db, workshop_id=workshop.id) is True
    assert capacity_ledger.reserve(db, workshop_id=workshop.id) is False
    db.commit()

    db.refresh(workshop)
    assert workshop.occupied_seats == 2
    assert capacity_ledger.available(db, workshop_id=workshop.id) == 0


def test_reserve_multiple_seats_is_all_or_nothing(db):
    workshop = make_workshop(db, capacity=3)
    assert capacity_ledger.reserve(db, workshop_id=workshop.id, seats=2)

    assert capacity_ledger.reserve(db, workshop_id=workshop.id, seats=2) is False
    db.commit()

    db.refresh(workshop)
    assert workshop.occupied_seats == 2


def test_release_never_goes_below_zero(db):
    workshop = make_workshop(db, capacity=2)

    assert capacity_ledger.release(db, workshop_id=workshop.id) is False
    assert capacity_ledger.reserve(db, workshop_id=workshop.id)
    assert capacity_ledger.release(db, workshop_id=workshop.id) is True
    db.commit()

    db.refresh(workshop)
    assert workshop.occupied_seats == 0


def test_available_for_unknown_workshop_is_zero(db):
    assert capacity_ledger.available(db, workshop_id="wks_missing") == 0


def test_recount_rebuilds_counter_from_registrations(db):
    workshop = make_workshop(db, capacity=5, status="published")
    make_registration(db, workshop, member_id="m1", status="confirmed")
    make_registration(db, workshop, member_id="m2", status="attended")
    make_registration(db, workshop, member_id="m3", status="cancelled")
    workshop.occupied_seats = 5
    db.commit()

    assert capacity_ledger.recount(db, workshop_id=workshop.id) == 2
    db.commit()
    db.refresh(workshop)
    assert workshop.occupied_seats == 2


def test_concurrent_reservations_never_overbook(tmp_path):
    """Ten workers race for three seats on a shared database file."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    # Let SQLAlchemy drive transactions so every one starts with a write lock
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)

    setup = Session()
    workshop = make_workshop(setup, capacity=3, status="published")
    workshop_id = workshop.id
    setup.close()

    results = []
    results_lock = threading.Lock()
    start = threading.Barrier(10)

    def worker():
        session = Session()
        try:
            start.wait()
            ok = capacity_ledger.reserve(session, workshop_id=workshop_id)
            if ok:
                session.commit()
            else:
                session.rollback()
            with results_lock:
                results.append(ok)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    check = Session()
    occupied = check.get(Workshop, workshop_id).occupied_seats
    check.close()
    engine.dispose()

    assert len(results) == 10
    assert results.count(True) == 3
    assert occupied == 3
