from creditshop.schemas.auth import LoginRequest, TokenResponse
from creditshop.schemas.admin import AdminOut, AdminCreate
from creditshop.schemas.product import ProductOut, ProductCreate, ProductUpdate, ShortCodeOut, ShortCodeCreate
from creditshop.schemas.stock import StockItemOut, StockItemsCreate, StockItemUpdate
from creditshop.schemas.slip import SlipOut, SlipApproveRequest, SlipRejectRequest, SlipDecisionOut
from creditshop.schemas.user import UserOut, CreditLimitUpdate, LedgerEntryOut
