from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

@dataclass
class FileDescriptor:
    name:       str
    size:       int
    mime_type:  Optional[str] = None

@dataclass
class StorageDeal:
    id:                  UUID
    user_id:             UUID
    file_cid:            str
    file_name:           str
    file_size:           int
    file_type:           Optional[str]
    total_cost:          Decimal
    price_per_gb:        Decimal
    status:              str
    created_at:          datetime
    expires_at:          datetime
    deal_duration:       int
    storage_provider_id: Optional[UUID] = None
    last_verified:       Optional[datetime] = None

@dataclass
class StorageProvider:
    id:                   UUID
    name:                 str
    location:             str
    reputation_score:     int
    total_storage_gb:     Decimal
    available_storage_gb: Decimal
    price_per_gb:         Decimal
    uptime_percentage:    Decimal

@dataclass
class UserWallet:
    id:           UUID
    user_id:      UUID
    dsc_balance:  Decimal
    total_earned: Decimal
    total_spent:  Decimal

@dataclass
class NetworkStats:
    total_nodes:           int
    active_deals:          int
    total_storage_used_gb: Decimal
    network_health_score:  Decimal
    avg_response_time_ms:  int
    recorded_at:           Optional[datetime] = None

@dataclass
class FileRetrieval:
    id:             UUID
    user_id:        UUID
    deal_id:        UUID
    retrieval_cost: Decimal
    status:         str
    started_at:     Optional[datetime] = None
    completed_at:   Optional[datetime] = None

@dataclass
class StatusRefreshResult:
    deals_activated: int
    deals_expired:   int

@dataclass
class SettlementDeal:
    deal_id:            str
    client_address:     str
    provider_address:   str
    file_cid:           str
    file_size:          int
    deal_cost:          Decimal
    deal_duration:      int
    collateral:         Decimal
    retrieval_price:    Decimal
    replication_factor: int
    verified:           bool
    timestamp:          int
    status:             str

@dataclass
class RetrievedContent:
    url:       str
    mime_type: str

@dataclass
class ProviderCredibility:
    reputation:       int
    total_deals:      int
    success_rate:     float
    total_storage:    int
    slashing_history: int
    verified:         bool

@dataclass
class ShareLink:
    id:              str
    deal_id:         str
    file_name:       str
    file_cid:        str
    share_url:       str
    expires_at:      datetime
    access_count:    int
    allow_download:  bool
    created_at:      datetime
    max_access:      Optional[int] = None
    password_hash:   Optional[str] = None
    deal_status:     Optional[str] = None
    deal_expires_at: Optional[datetime] = None

    @property
    def password_protected(self) -> bool:
        return self.password_hash is not None

@dataclass
class BackupSettings:
    auto_backup:          bool = True
    backup_frequency:     str = "daily"
    replication_factor:   int = 3
    storage_regions:      list[str] = field(default_factory=lambda: ["us-east", "eu-west"])
    encryption_enabled:   bool = True
    versioning:           bool = True
    compression_level:    int = 5
    max_versions:         int = 10
    retention_period:     str = "1year"
    bandwidth_limit_mbps: int = 100

@dataclass
class Notification:
    title:       str
    description: str
    variant:     str = "default"
