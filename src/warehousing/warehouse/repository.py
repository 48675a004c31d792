"""Repository for the Warehouse aggregate."""

from warehousing.domain import warehousing
from warehousing.persistence import collect_all
from warehousing.warehouse.warehouse import Warehouse


@warehousing.repository(part_of=Warehouse)
class WarehouseRepository:
    def find_active(self) -> list[Warehouse]:
        """Active warehouses, in a stable order."""
        warehouses = collect_all(self._dao.query.filter(is_active=True))
        return sorted(warehouses, key=lambda w: str(w.id))
