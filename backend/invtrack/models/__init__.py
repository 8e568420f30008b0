from .inventory import InventoryLocation, InventoryItem, InventoryMovement
from .sync import SyncRun, OutboundImei
from .auth import User, SessionToken
from .activity import ActivityLogEntry, UserActivityStats, ShippedImei
from .reports import DailyInventorySnapshot

__all__ = [
    'InventoryLocation', 'InventoryItem', 'InventoryMovement',
    'SyncRun', 'OutboundImei',
    'User', 'SessionToken',
    'ActivityLogEntry', 'UserActivityStats', 'ShippedImei',
    'DailyInventorySnapshot',
]
