from fieldledger.db.base import Base
from fieldledger import models  # noqa: F401  registers every mapped table

target_metadata = Base.metadata
