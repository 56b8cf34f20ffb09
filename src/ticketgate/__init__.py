"""ticketgate - Sync ticketing-platform purchases into an ACSM championship roster."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ticketgate")
except PackageNotFoundError:
    __version__ = "0+local"
from ticketgate.config import GatewayConfig, MetadataFieldIds, OAuth2Settings
from ticketgate.exceptions import (
    AuthError,
    ConfigError,
    GatewayError,
    RemoteError,
    RosterChangedError,
    RosterError,
    SyncCancelledError,
    SyncInProgressError,
)
from ticketgate.gateway import Gateway
from ticketgate.mapping import CarMapping
from ticketgate.models import (
    CarAssignment,
    Entrant,
    Exclusion,
    ExclusionReason,
    MetadataLookup,
    NotMapped,
    Rejected,
    SlotConflict,
    SyncReport,
    SyncStatus,
    Ticket,
    Token,
)
from ticketgate.oauth import TokenStore
from ticketgate.orchestrator import SyncOrchestrator, TriggerSource
from ticketgate.reconcile import RosterDiff, RosterReconciler, diff_roster

__all__ = [
    "__version__",
    "AuthError",
    "CarAssignment",
    "CarMapping",
    "ConfigError",
    "Entrant",
    "Exclusion",
    "ExclusionReason",
    "Gateway",
    "GatewayConfig",
    "GatewayError",
    "MetadataFieldIds",
    "MetadataLookup",
    "NotMapped",
    "OAuth2Settings",
    "Rejected",
    "RemoteError",
    "RosterChangedError",
    "RosterDiff",
    "RosterError",
    "RosterReconciler",
    "SlotConflict",
    "SyncCancelledError",
    "SyncInProgressError",
    "SyncOrchestrator",
    "SyncReport",
    "SyncStatus",
    "Ticket",
    "Token",
    "TokenStore",
    "TriggerSource",
    "diff_roster",
]
