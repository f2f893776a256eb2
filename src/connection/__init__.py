"""
Chart tool connection: state machine, frame relay and snapshot store
"""

from .manager import ChartToolConnection
from .results import ConnectResult, ResultKind
from .snapshot_store import SnapshotStore, StoreSnapshot
from .state import ConnectionState

__all__ = ['ChartToolConnection', 'ConnectResult', 'ResultKind', 'SnapshotStore',
           'StoreSnapshot', 'ConnectionState']
