from .job import Job
from .provisioning_record import ProvisioningRecord

__all__ = ["Job", "ProvisioningRecord"]
