"""服务层能力导出集合。"""

from greenlight_api.services.mailer import Mailer, MailMessage, build_mailer, deliver_with_retry
from greenlight_api.services.permissions import (
    DEFAULT_USER_PERMISSIONS,
    PermissionCode,
    add_for_user,
    codes_for_user,
    require_activated,
    require_authenticated,
    require_permission,
    seed_permissions,
)
from greenlight_api.services.pipeline import Admission, AdmissionOutcome, RequestPipeline
from greenlight_api.services.tokens import delete_all_for_user, get_user_for_token, new_token, purge_expired_tokens
from greenlight_api.services.versioning import check_and_apply

__all__ = [
    "Admission",
    "AdmissionOutcome",
    "RequestPipeline",
    "new_token",
    "get_user_for_token",
    "delete_all_for_user",
    "purge_expired_tokens",
    "PermissionCode",
    "DEFAULT_USER_PERMISSIONS",
    "codes_for_user",
    "seed_permissions",
    "add_for_user",
    "require_authenticated",
    "require_activated",
    "require_permission",
    "check_and_apply",
    "Mailer",
    "MailMessage",
    "build_mailer",
    "deliver_with_retry",
]
