"""
Transactional email.

Bodies are rendered from the Jinja2 templates in ``clinicflow/templates/email``
and queued on ``email_outbox``; a delivery worker drains the outbox.
"""
from __future__ import annotations

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import get_settings
from clinicflow.models import EmailOutbox

_log = logging.getLogger("clinicflow.email")

tpl_dir = Path(__file__).resolve().parent.parent / "templates" / "email"
env = Environment(
    loader=FileSystemLoader(str(tpl_dir)),
    autoescape=select_autoescape(["html", "xml"]),
)

SUBJECTS = {
    "reset_password": "Reset your password",
    "set_password": "Set up your account",
    "onboarding_invite": "Your onboarding questionnaire",
    "referral_notification": "New patient referral",
}


def render(template: str, **context) -> str:
    settings = get_settings()
    return env.get_template(f"{template}.html").render(app_name=settings.APP_NAME, **context)


async def queue_email(session: AsyncSession, *, to: str, template: str, **context) -> EmailOutbox:
    row = EmailOutbox(
        to_email=to,
        subject=SUBJECTS[template],
        template=template,
        html_body=render(template, **context),
        status="PENDING",
    )
    session.add(row)
    await session.flush()
    _log.info("email queued", extra={"template": template, "outbox_id": str(row.id)})
    return row
