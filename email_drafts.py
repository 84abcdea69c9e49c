"""
email_drafts.py
Builds the remediation notice sent to merchants that failed the audit but had
at least one policy page the crawler could find, and writes drafts to disk.
"""
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from policy_checker import LEGAL_NAME_ITEM, POLICY_CONFIG, PolicyKind, resolve_proprietorship

EMAIL_SUBJECT = "PayGlocal Onboarding: Website Updates Needed"
EMAIL_SIGNATURE = "Sincerely,\nPayGlocal Onboarding Team"

LEGAL_NAME_LOCATIONS = [
    "Website Footer (Most common)",
    "About Us page",
    "Contact Us page",
]


@dataclass
class EmailDraft:
    to: str
    subject: str
    body: str

    def as_text(self) -> str:
        return f"To: {self.to}\nSubject: {self.subject}\n\n{self.body}"


def display_name(item: str) -> str:
    try:
        return POLICY_CONFIG[PolicyKind(item)].display_name
    except ValueError:
        return item


def compose_email(
    website: str,
    legal_name: str,
    merchant_email: str,
    missing_items: List[str],
    entity_type: Optional[str],
    year: Optional[int] = None,
) -> EmailDraft:
    year = year or datetime.now().year
    legal_name_missing = LEGAL_NAME_ITEM in missing_items and resolve_proprietorship(entity_type)
    other_missing = [m for m in missing_items if m != LEGAL_NAME_ITEM]

    body = f"Dear {legal_name or 'Merchant'},\n\n"
    body += (
        "Following our initial review for your PayGlocal onboarding, we need your assistance "
        "to ensure your website meets our required compliance standards.\n\n"
    )
    body += f"Please implement the following updates on {website}:\n\n"

    if legal_name_missing:
        body += (
            "1. As the company has been registered as a proprietorship, RBI guidelines require you "
            "to display your legal name on the website. Please update the website to display your "
            f"registered legal name: {legal_name}\n\n"
        )
        body += "   Possible locations to display your legal name:\n"
        for location in LEGAL_NAME_LOCATIONS:
            body += f"   • {location}\n"
        body += (
            f'   • Site-Wide copyright notice (e.g., "© {year} {legal_name}. All rights reserved.")\n\n'
        )

    if other_missing:
        if legal_name_missing:
            body += "2. "
        body += "It is required that you add the following policies to your website for legal protection:\n"
        body += "".join(f"   • {display_name(m)}\n" for m in other_missing)
        body += "\n"

    body += (
        "These updates are necessary before we can activate your account. Once completed, "
        "kindly notify us so we can verify and proceed.\n\n"
    )
    body += "Thank you for your prompt attention to this.\n\n"
    body += EMAIL_SIGNATURE

    return EmailDraft(to=merchant_email, subject=EMAIL_SUBJECT, body=body)


def email_filename(website: str, index: int) -> str:
    safe = re.sub(r"^https?://", "", website)
    safe = re.sub(r"[^a-z0-9]", "_", safe, flags=re.I).lower()
    return f"email_{index + 1}_{safe}.txt"


def save_email(directory: str, website: str, draft: EmailDraft, index: int) -> str:
    """Write the draft under `directory` and return its file name."""
    os.makedirs(directory, exist_ok=True)
    filename = email_filename(website, index)
    with open(os.path.join(directory, filename), "w", encoding="utf-8") as f:
        f.write(draft.as_text())
    return filename
