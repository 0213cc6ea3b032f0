from .tenancy import Organization, Branch, Doctor
from .catalog import ServiceLine, ServiceRate, PaymentMode
from .patients import Patient, Visit
from .billing import Charge, ChargeAdjustment, Payment, PaymentAllocation
from .queue import QueueEntry
from .sequences import SequenceCounter

__all__ = [
    'Organization', 'Branch', 'Doctor',
    'ServiceLine', 'ServiceRate', 'PaymentMode',
    'Patient', 'Visit',
    'Charge', 'ChargeAdjustment', 'Payment', 'PaymentAllocation',
    'QueueEntry',
    'SequenceCounter',
]
