from district_linkage.models.base import Base
from district_linkage.models.import_batch import ImportBatch
from district_linkage.models.match_record import MatchRecord
from district_linkage.models.nces_district import NcesDistrict
from district_linkage.models.policy_settings import PolicySettings
from district_linkage.models.quality_flag import QualityFlag
from district_linkage.models.state_registry_district import StateRegistryDistrict

__all__ = [
    "Base",
    "ImportBatch",
    "MatchRecord",
    "NcesDistrict",
    "PolicySettings",
    "QualityFlag",
    "StateRegistryDistrict",
]
