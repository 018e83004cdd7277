import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import date, datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_emr.db.session import get_db
from clinic_emr.main import app
from clinic_emr.models import Base, Patient, PatientStatus
from clinic_emr.services.chart_entries import ChartEntryService, SqlAlchemyChartEntryRepository


class SteppingClock:
    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return SteppingClock(datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(db, clock):
    return ChartEntryService(SqlAlchemyChartEntryRepository(db), now=clock)


@pytest.fixture
def make_patient(db):
    def _make(**overrides):
        fields = {
            "last_name": "山田",
            "first_name": "太郎",
            "last_name_kana": "ヤマダ",
            "first_name_kana": "タロウ",
            "date_of_birth": date(1980, 1, 1),
            "gender": "male",
            "first_visit_date": date(2024, 1, 1),
            "status": PatientStatus.active,
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        patient = Patient(**fields)
        db.add(patient)
        db.commit()
        return patient

    return _make


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def api_client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
