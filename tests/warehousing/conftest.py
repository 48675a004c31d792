import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def warehousing_bed():
    from warehousing.domain import warehousing
    from warehousing.utils.db import drop_db, setup_db

    bed = DomainFixture(warehousing)
    bed.setup()
    setup_db(warehousing)
    yield bed
    drop_db(warehousing)
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(warehousing_bed):
    with warehousing_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()
