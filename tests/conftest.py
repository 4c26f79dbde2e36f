"""Shared test fixtures."""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from district_linkage.models import Base, ImportBatch, NcesDistrict, StateRegistryDistrict
from district_linkage.records import BaselineEntity, BatchContext, SourceRecord

PROJECT_ROOT = Path(__file__).resolve().parents[1]
MATCHING_YAML = PROJECT_ROOT / "config" / "matching.yaml"


def make_source(
    id: str = "src-1",
    name: str = "Springfield School District",
    region: str = "IL",
    batch_id: str = "batch-1",
    **kwargs,
) -> SourceRecord:
    """Helper: a SourceRecord with sensible defaults."""
    return SourceRecord(id=id, name=name, region=region, batch_id=batch_id, **kwargs)


def stub_similarity(scores: dict[str, float], default: float = 0.0):
    """Similarity function keyed by the baseline's normalized name."""

    def similarity(_source: str, baseline: str) -> float:
        return scores.get(baseline, default)

    return similarity


@pytest.fixture
def baseline() -> list[BaselineEntity]:
    """A small multi-state baseline."""
    return [
        BaselineEntity(id="0622710", name="Los Angeles USD", region="CA", city="Los Angeles", enrollment=420000),
        BaselineEntity(id="0634320", name="San Diego Unified", region="CA", city="San Diego", enrollment=95000),
        BaselineEntity(id="1737860", name="Springfield School District 186", region="IL", city="Springfield", enrollment=13000),
        BaselineEntity(id="1737830", name="Springfield Community School District", region="IL", city="Springfield", enrollment=900),
        BaselineEntity(id="1709930", name="Oak Park Elementary School District 97", region="IL", city="Oak Park", enrollment=5400),
        BaselineEntity(id="2502790", name="Boston Public Schools", region="MA", city="Boston", enrollment=46000),
        BaselineEntity(id="4807560", name="Saint Jo Independent School District", region="TX", city="Saint Jo"),
    ]


@pytest.fixture
def ctx() -> BatchContext:
    return BatchContext(batch_id="batch-1", actor="test-runner")


@pytest.fixture
async def test_engine():
    """Create an async SQLite in-memory engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
async def seeded_db(test_session_factory, baseline):
    """Seed the baseline, one import batch and its state registry rows.

    Batch ``batch-1`` holds:
        src-la     "Los Angeles Unified School District" (CA)  -> normalized_name
        src-bos    "Boston Public Schools" (MA)                -> exact_name
        src-id     carries NCES id 1709930 (IL)                -> exact_id
        src-blank  blank name                                  -> errored
        src-wy     region with no baseline data                -> rejected, errored
    """
    async with test_session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    NcesDistrict(
                        nces_id=e.id,
                        name=e.name,
                        state=e.region,
                        city=e.city,
                        enrollment=e.enrollment,
                    )
                    for e in baseline
                ]
            )
            session.add(
                ImportBatch(
                    id="batch-1",
                    source_type="state_registry",
                    source_name="Test DOE",
                    source_file="districts.csv",
                    record_count=5,
                    imported_by="loader",
                )
            )
            await session.flush()
            session.add_all(
                [
                    StateRegistryDistrict(
                        id="src-la",
                        import_batch_id="batch-1",
                        state="CA",
                        district_name="Los Angeles Unified School District",
                        city="Los Angeles",
                        administrator_first_name="Alberto",
                        administrator_last_name="Carvalho",
                        administrator_email="supt@lausd.net",
                        website_url="https://lausd.net",
                    ),
                    StateRegistryDistrict(
                        id="src-bos",
                        import_batch_id="batch-1",
                        state="MA",
                        district_name="Boston Public Schools",
                        website_url="https://bostonpublicschools.org",
                    ),
                    StateRegistryDistrict(
                        id="src-id",
                        import_batch_id="batch-1",
                        state="IL",
                        nces_id="1709930",
                        district_name="Oak Park ESD 97",
                    ),
                    StateRegistryDistrict(
                        id="src-blank",
                        import_batch_id="batch-1",
                        state="IL",
                        district_name="   ",
                    ),
                    StateRegistryDistrict(
                        id="src-wy",
                        import_batch_id="batch-1",
                        state="WY",
                        district_name="Laramie County School District 1",
                    ),
                ]
            )
    return test_session_factory
