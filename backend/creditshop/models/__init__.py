from creditshop.models.base import Base
from creditshop.models.account import Account
from creditshop.models.admin import Admin
from creditshop.models.product import Product, ShortCode
from creditshop.models.stock import StockUnit
from creditshop.models.slip import SlipRecord
from creditshop.models.ledger import LedgerEntry
from creditshop.models.token import CreditToken
from creditshop.models.tier import CreditTier
from creditshop.models.app_setting import AppSetting
from creditshop.models.processed_event import ProcessedEvent
from creditshop.models.audit import AuditLog
from creditshop.models.job import Job
