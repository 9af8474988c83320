from rentledger.extensions import db

# Core Models
from .admin import Admin
from .property import Property
from .tenant import Tenant
from .bill import Bill
from .profit import Profit
from .generation_lock import GenerationLock
