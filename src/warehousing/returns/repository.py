"""Repository for the ExpectedReturn aggregate."""

from warehousing.domain import warehousing
from warehousing.persistence import collect_all
from warehousing.returns.expected_return import ExpectedReturn, ExpectedReturnStatus


@warehousing.repository(part_of=ExpectedReturn)
class ExpectedReturnRepository:
    def find_for_order(self, order_id) -> list[ExpectedReturn]:
        return collect_all(self._dao.query.filter(order_id=str(order_id)))

    def find_open_for_order(self, order_id) -> ExpectedReturn | None:
        """The order's expected return that has not been received yet, if any."""
        return next((er for er in self.find_for_order(order_id) if er.is_open), None)

    def find_open(self) -> list[ExpectedReturn]:
        return collect_all(self._dao.query.exclude(status=ExpectedReturnStatus.RECEIVED.value))
