from .setting import SystemSetting
from .domain import Domain, UserDomain
from .user import User
from .report import Report, ReportRecord
from .report_log import ReportLogEntry


__all__ = [
    "SystemSetting",
    "Domain",
    "UserDomain",
    "User",
    "Report",
    "ReportRecord",
    "ReportLogEntry",
]
