# Importing this package registers every table on Base.metadata.
from blockserved.models.notice_record import NoticeRecord  # noqa: F401
from blockserved.models.access_token import DocumentAccessToken  # noqa: F401
from blockserved.models.access_attempt import AccessAttempt  # noqa: F401
from blockserved.models.notice_view import NoticeView  # noqa: F401
from blockserved.models.process_server import ProcessServer  # noqa: F401
from blockserved.models.admin import AdminUser, AdminAccessLog  # noqa: F401
from blockserved.models.token_metadata import TokenMetadata  # noqa: F401
from blockserved.models.reconciliation_log import ReconciliationLogEntry  # noqa: F401
