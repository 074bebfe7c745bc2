"""
Shared fixtures for the content and scraping service test suite.

Every test runs against a fresh in-memory SQLite database bound to
database.SessionLocal, with provider keys set to dummy values, so no
external service is touched.
"""
import os
import tempfile
from unittest.mock import MagicMock

# Must be set before config/database are imported anywhere
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(tempfile.gettempdir(), 'sparti_test_bootstrap.db')}"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import database
import models  # noqa: F401  registers every table on Base.metadata


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def test_engine():
    """In-memory SQLite shared across threads, schema created per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    database.SessionLocal.configure(bind=engine)
    database.Base.metadata.create_all(bind=engine)
    yield engine
    database.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Environment fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def provider_keys(monkeypatch):
    """Dummy secrets so adapters can be constructed."""
    for name in (
        "OPENROUTER_API_KEY",
        "LOBSTR_API_KEY",
        "FIRECRAWL_API_KEY",
        "IMAGE_GATEWAY_API_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
    ):
        monkeypatch.setenv(name, f"test-{name.lower()}")
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.test")


@pytest.fixture(autouse=True)
def no_usage_ledger(monkeypatch):
    """Token usage rows are written from a worker thread; keep them out of stage tests."""
    ledger = MagicMock()
    monkeypatch.setattr("activities.content_activities.log_token_usage", ledger)
    return ledger


# ---------------------------------------------------------------------------
# Data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def brand(db_session):
    from models import Brand

    row = Brand(
        id="brand-1",
        user_id="user-1",
        name="Acme Roofing",
        website="https://acme-roofing.test",
        industry="Home services",
        description="Residential roofing contractor",
        target_audience="Homeowners",
        brand_voice="Friendly and practical",
        key_selling_points="Lifetime warranty",
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def seo_campaign(db_session, brand):
    from models import SeoCampaign

    row = SeoCampaign(
        id="campaign-1",
        brand_id=brand.id,
        user_id="user-1",
        website_url="https://acme-roofing.test",
        business_description="Roof repair and replacement",
        target_country="United States",
        language="English",
        organic_keywords=[{"keyword": "roof repair"}, "metal roofing"],
        style_analysis={
            "competitorData": {"topCompetitors": [{"url": "https://rival.test"}]},
            "contentPillars": ["Maintenance", "Materials"],
        },
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def content_request_body():
    """Minimal valid body for the content writing endpoints."""
    return {
        "topics": [{
            "title": "How to Choose a Roofing Contractor",
            "description": "A practical guide to vetting roofers before signing a contract.",
            "keywords": ["roofing contractor", "roof replacement"],
            "outline": ["Licensing", "Insurance", "Quotes"],
        }],
        "brandId": "brand-1",
        "userId": "user-1",
        "wordCount": 800,
    }
