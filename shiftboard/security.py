from __future__ import annotations

import hmac


def verify_admin_token(provided: str | None, configured: str | None) -> bool:
    if not provided or not configured:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), configured.encode("utf-8"))
