"""
Pytest fixtures for laptrack backend tests.

Provides test database setup, reference data and factory fixtures for
laptops, reception reports and shipments.
"""

import itertools

import pytest
from laptrack import create_app
from laptrack.extensions import db
from laptrack.models import ClientCompany, SoftwareEngineer
from laptrack.services import laptop_service, reception_service, shipment_service
from laptrack.services.laptop_service import LaptopStatus
from laptrack.services.shipment_stages import ShipmentVariant


WAREHOUSE_USER_ID = 11
MANAGER_USER_ID = 12


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SAMPLE_SEED_ENABLED': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company(db_session):
    """Client company owning the test laptops."""
    company = ClientCompany(name="Acme Corp", contact_email="it@acme.example")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def other_company(db_session):
    company = ClientCompany(name="Beta Inc", contact_email="it@beta.example")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def engineer(db_session):
    engineer = SoftwareEngineer(name="Dana Reyes", email="dana.reyes@acme.example")
    db_session.add(engineer)
    db_session.commit()
    return engineer


@pytest.fixture
def photos():
    return {
        "photo_serial_number": "https://photos.example/serial.jpg",
        "photo_external_condition": "https://photos.example/external.jpg",
        "photo_working_condition": "https://photos.example/working.jpg",
    }


@pytest.fixture
def make_laptop(db_session, company):
    """Factory: laptop registered through laptop_service (at_warehouse by default)."""
    serials = itertools.count(1)

    def _make(status=LaptopStatus.AT_WAREHOUSE, **kwargs):
        kwargs.setdefault("serial_number", f"SN-{next(serials):05d}")
        kwargs.setdefault("client_company_id", company.id)
        return laptop_service.create_laptop(status=status, **kwargs)

    return _make


@pytest.fixture
def make_report(photos):
    """Factory: pending reception report for an at_warehouse laptop."""
    def _make(laptop, **kwargs):
        kwargs.setdefault("warehouse_user_id", WAREHOUSE_USER_ID)
        for key, value in photos.items():
            kwargs.setdefault(key, value)
        return reception_service.create_reception_report(laptop_id=laptop.id, **kwargs)

    return _make


@pytest.fixture
def make_available_laptop(make_laptop, make_report):
    """Factory: laptop taken through inspection and approval."""
    def _make(**kwargs):
        laptop = make_laptop(**kwargs)
        report = make_report(laptop)
        reception_service.approve_reception_report(report.id, MANAGER_USER_ID)
        return laptop_service.get_laptop(laptop.id)

    return _make


@pytest.fixture
def make_shipment(db_session, company, engineer, make_available_laptop):
    """
    Factory: shipment created through shipment_service.

    Defaults per variant: bulk carries 3 laptops (declared, not linked),
    warehouse_to_engineer gets the engineer and a freshly approved laptop.
    """
    tickets = itertools.count(1001)

    def _make(shipment_type=ShipmentVariant.BULK_TO_WAREHOUSE, **kwargs):
        variant = ShipmentVariant(shipment_type)
        kwargs.setdefault("client_company_id", company.id)
        kwargs.setdefault("jira_ticket_number", f"SCOP-{next(tickets)}")
        if variant == ShipmentVariant.BULK_TO_WAREHOUSE:
            kwargs.setdefault("laptop_count", 3)
        elif variant == ShipmentVariant.WAREHOUSE_TO_ENGINEER:
            kwargs.setdefault("software_engineer_id", engineer.id)
            if "laptop_ids" not in kwargs:
                kwargs["laptop_ids"] = [make_available_laptop().id]
        return shipment_service.create_shipment(shipment_type=variant, **kwargs)

    return _make
