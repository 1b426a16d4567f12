import threading
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from greenlight_api.core.errors import EditConflictError, NotFoundError
from greenlight_api.models.base import Base
from greenlight_api.models.movie import Movie
from greenlight_api.services.versioning import check_and_apply


def _create_movie(db: Session) -> Movie:
    movie = Movie(title="Moana", year=2016, runtime=107, genres=["animation"], version=1)
    db.add(movie)
    db.commit()
    return movie


def test_matching_version_applies_and_increments(db_session: Session):
    movie = _create_movie(db_session)

    new_version = check_and_apply(
        db_session, Movie, resource_id=movie.id, presented_version=1, values={"title": "Moana 2"}
    )
    db_session.commit()

    assert new_version == 2
    refreshed = db_session.get(Movie, movie.id)
    assert refreshed.version == 2
    assert refreshed.title == "Moana 2"


def test_stale_version_is_conflict(db_session: Session):
    movie = _create_movie(db_session)
    check_and_apply(db_session, Movie, resource_id=movie.id, presented_version=1, values={"runtime": 110})
    db_session.commit()

    with pytest.raises(EditConflictError) as exc_info:
        check_and_apply(db_session, Movie, resource_id=movie.id, presented_version=1, values={"runtime": 90})

    assert exc_info.value.status_code == 409
    assert db_session.get(Movie, movie.id).runtime == 110


def test_missing_resource_is_not_found(db_session: Session):
    with pytest.raises(NotFoundError):
        check_and_apply(db_session, Movie, resource_id=uuid4(), presented_version=1, values={"runtime": 90})


def test_version_cannot_be_set_directly(db_session: Session):
    movie = _create_movie(db_session)
    with pytest.raises(ValueError):
        check_and_apply(db_session, Movie, resource_id=movie.id, presented_version=1, values={"version": 7})


def test_concurrent_writers_exactly_one_wins(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    local_session = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)

    with local_session() as db:
        movie_id = _create_movie(db).id

    writers = 2
    barrier = threading.Barrier(writers)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def _write(runtime: int) -> None:
        with local_session() as db:
            barrier.wait()
            try:
                check_and_apply(db, Movie, resource_id=movie_id, presented_version=1, values={"runtime": runtime})
                db.commit()
                outcome = "won"
            except EditConflictError:
                db.rollback()
                outcome = "conflict"
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_write, args=(100 + index,)) for index in range(writers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["conflict", "won"]
    with local_session() as db:
        stored = db.get(Movie, movie_id)
        assert stored.version == 2
        assert stored.runtime in {100, 101}
    engine.dispose()
