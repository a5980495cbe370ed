"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest

TEST_DB_URL = "sqlite:///./test_entity_verifier.db"

# Force SQLite and disable every external credential for tests
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["SERPAPI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

from entity_verifier.store.database import Base, RecordStore, TaskStore, get_engine


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create a fresh database for each test."""
    engine = get_engine(TEST_DB_URL)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def record_store() -> RecordStore:
    return RecordStore(TEST_DB_URL)


@pytest.fixture
def task_store() -> TaskStore:
    return TaskStore(TEST_DB_URL)


@pytest.fixture
def company_page_html() -> str:
    """A company contact page carrying one JSON-LD address and nothing else."""
    return """
    <html>
      <head>
        <title>Contact | Acme Capital</title>
        <script type="application/ld+json">
        {
          "@context": "https://schema.org",
          "@type": "Organization",
          "name": "Acme Capital",
          "url": "https://www.acmecapital.com",
          "address": {
            "@type": "PostalAddress",
            "streetAddress": "200 Clarendon Street",
            "addressLocality": "Boston",
            "addressCountry": "United States"
          }
        }
        </script>
      </head>
      <body>
        <h1>Get in touch</h1>
        <p>We invest in growth-stage software businesses.</p>
      </body>
    </html>
    """
