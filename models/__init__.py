from models.profile import SellerProfile
from models.file import ProtectedFile
from models.payment_link import PaymentLink
from models.transaction import Transaction, TransactionStatus
from models.download_grant import DownloadGrant

__all__ = [
    "SellerProfile",
    "ProtectedFile",
    "PaymentLink",
    "Transaction",
    "TransactionStatus",
    "DownloadGrant",
]
