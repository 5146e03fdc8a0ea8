# Overview: Best-effort dispatch of audit and notification side effects.

from __future__ import annotations

from flask import current_app


def best_effort(label: str, func, *args, **kwargs):
    """
    Call a side-channel collaborator without letting it fail the caller.

    Used after the primary unit of work has committed. Failures are logged
    and swallowed; the return value is None in that case.
    """
    try:
        return func(*args, **kwargs)
    except Exception:
        current_app.logger.exception("Side effect failed: %s", label)
        return None
