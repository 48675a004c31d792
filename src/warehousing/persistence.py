"""Repository lookups that surface missing ids as ``NotFound``."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from warehousing.exceptions import NotFound


def fetch(aggregate_cls, identifier):
    """Load an aggregate by id or raise ``NotFound`` naming it."""
    if not identifier:
        raise NotFound(aggregate_cls.__name__, identifier)
    try:
        return current_domain.repository_for(aggregate_cls).get(identifier)
    except NotFound:
        raise
    except ObjectNotFoundError as exc:
        raise NotFound(aggregate_cls.__name__, identifier) from exc


PAGE_SIZE = 500


def collect_all(query) -> list:
    """Every record matching ``query``, read page by page."""
    items: list = []
    offset = 0
    while True:
        result = query.offset(offset).limit(PAGE_SIZE).all()
        items.extend(result.items)
        if not result.has_next:
            return items
        offset += PAGE_SIZE
