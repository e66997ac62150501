# Overview: Hands freshly issued login codes to the configured delivery channel.

from __future__ import annotations

from flask import current_app

from .security_service import mask_email


def deliver_login_code(email: str, code: str) -> bool:
    """
    Pass a code to LOGIN_CODE_SENDER (callable (email, code) -> None).

    Returns False when no sender is configured. The code itself is never
    logged; an unconfigured deployment only records that delivery was skipped.
    """
    sender = current_app.config.get("LOGIN_CODE_SENDER")
    if sender is None:
        current_app.logger.warning(
            "No LOGIN_CODE_SENDER configured; login code for %s was not delivered",
            mask_email(email),
        )
        return False

    sender(email, code)
    current_app.logger.info("Login code delivered to %s", mask_email(email))
    return True
