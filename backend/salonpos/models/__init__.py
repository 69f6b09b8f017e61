from .catalog import Category, Role, CategoryRole, Item, Employee, EmployeeService
from .customers import Customer
from .inventory import InventoryBatch, InventoryRecord, BATCH_TYPES, RECORD_TYPES
from .sales import Sale, SaleItem
from .settings import Setting

__all__ = [
    'Category', 'Role', 'CategoryRole', 'Item', 'Employee', 'EmployeeService',
    'Customer',
    'InventoryBatch', 'InventoryRecord', 'BATCH_TYPES', 'RECORD_TYPES',
    'Sale', 'SaleItem',
    'Setting',
]
