from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON anywhere else
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class SourceType(str, enum.Enum):
    """Catalog sources"""
    COSMOS = "cosmos"
    OPENFOODFACTS = "openfoodfacts"


class RunState(str, enum.Enum):
    """Pipeline run state"""
    INIT = "init"
    STREAMING = "streaming"
    FLUSHING_BATCH = "flushing_batch"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class StopReason(str, enum.Enum):
    """Why the streaming phase ended"""
    EXHAUSTED = "exhausted"
    MAX_SCANNED = "max_scanned"
    MAX_RECORDS = "max_records"
    CANCELLED = "cancelled"
    ABORTED = "aborted"
