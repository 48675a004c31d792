"""Warehouse management — commands and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from warehousing.domain import logger, warehousing
from warehousing.persistence import fetch
from warehousing.warehouse.warehouse import Warehouse


@warehousing.command(part_of="Warehouse")
class CreateWarehouse:
    """Create a new warehouse."""

    name = String(required=True, max_length=255)
    location = String(max_length=255)
    capacity = Integer(required=True, min_value=1)
    actor = String(max_length=100)


@warehousing.command(part_of="Warehouse")
class UpdateWarehouse:
    """Update warehouse details."""

    warehouse_id = Identifier(required=True)
    name = String(max_length=255)
    location = String(max_length=255)
    capacity = Integer(min_value=1)
    actor = String(max_length=100)


@warehousing.command(part_of="Warehouse")
class DeactivateWarehouse:
    """Deactivate a warehouse."""

    warehouse_id = Identifier(required=True)
    actor = String(max_length=100)


@warehousing.command_handler(part_of=Warehouse)
class WarehouseManagementHandler:
    @handle(CreateWarehouse)
    def create_warehouse(self, command):
        warehouse = Warehouse.create(
            name=command.name,
            capacity=command.capacity,
            location=command.location,
        )
        current_domain.repository_for(Warehouse).add(warehouse)
        logger.info(
            "warehouse_created",
            warehouse_id=str(warehouse.id),
            capacity=warehouse.capacity,
            actor=command.actor,
        )
        return str(warehouse.id)

    @handle(UpdateWarehouse)
    def update_warehouse(self, command):
        warehouse = fetch(Warehouse, command.warehouse_id)
        warehouse.update_details(
            name=command.name,
            location=command.location,
            capacity=command.capacity,
        )
        current_domain.repository_for(Warehouse).add(warehouse)
        return warehouse

    @handle(DeactivateWarehouse)
    def deactivate_warehouse(self, command):
        warehouse = fetch(Warehouse, command.warehouse_id)
        warehouse.deactivate()
        current_domain.repository_for(Warehouse).add(warehouse)
        logger.info("warehouse_deactivated", warehouse_id=str(warehouse.id), actor=command.actor)
        return warehouse
