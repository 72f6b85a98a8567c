"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, parse_iso, days_from_now, month_start
from utils.user_context import (
    get_current_user_id,
    get_current_scope,
    set_current_user,
    clear_current_user,
    user_context,
)
