import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fieldledger.db.base import Base
from fieldledger.db.session import enable_sqlite_savepoints, get_db
from fieldledger.main import app
from fieldledger.models.company import Company, CompanyEmployee, CompanyOwner, Profile
from fieldledger.models.customer import Customer, Job
from fieldledger.models.enums import DepositType, PaymentMethod
from fieldledger.models.payment import Payment


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db: Session):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    client_instance = TestClient(app)
    try:
        yield client_instance
    finally:
        client_instance.close()
        app.dependency_overrides.clear()


def make_profile(db: Session, name: str, email: str | None = None) -> Profile:
    profile = Profile(full_name=name, email=email or f"{name.lower().replace(' ', '.')}@example.com")
    db.add(profile)
    db.flush()
    return profile


def make_company(db: Session, *owners: Profile, name: str = "Acme Field Services") -> Company:
    company = Company(name=name)
    db.add(company)
    db.flush()
    for index, owner in enumerate(owners):
        db.add(CompanyOwner(company_id=company.id, profile_id=owner.id, is_primary_owner=index == 0))
    db.flush()
    return company


def make_customer(db: Session, company: Company, name: str = "Jane Customer") -> Customer:
    customer = Customer(company_id=company.id, name=name)
    db.add(customer)
    db.flush()
    return customer


def make_payment(
    db: Session,
    customer: Customer,
    created_by: Profile,
    amount: str,
    *,
    is_deposit: bool = True,
    deposit_type: DepositType | None = DepositType.GENERAL,
) -> Payment:
    payment = Payment(
        company_id=customer.company_id,
        customer_id=customer.id,
        amount=Decimal(amount),
        payment_method=PaymentMethod.CASH,
        is_deposit=is_deposit,
        deposit_type=deposit_type if is_deposit else None,
        created_by=created_by.id,
    )
    db.add(payment)
    db.flush()
    return payment


@pytest.fixture()
def owner(db: Session) -> Profile:
    return make_profile(db, "Olive Owner")


@pytest.fixture()
def company(db: Session, owner: Profile) -> Company:
    company = make_company(db, owner)
    db.commit()
    return company


@pytest.fixture()
def customer(db: Session, company: Company) -> Customer:
    customer = make_customer(db, company)
    db.commit()
    return customer


@pytest.fixture()
def employee(db: Session, company: Company) -> CompanyEmployee:
    worker = make_profile(db, "Walt Worker")
    employee = CompanyEmployee(company_id=company.id, profile_id=worker.id, hourly_rate=Decimal("25.00"))
    db.add(employee)
    db.commit()
    return employee


@pytest.fixture()
def job(db: Session, company: Company, customer: Customer) -> Job:
    job = Job(company_id=company.id, customer_id=customer.id, title="Replace water heater")
    db.add(job)
    db.commit()
    return job


def auth(profile: Profile) -> dict:
    return {"X-Profile-Id": str(profile.id)}
