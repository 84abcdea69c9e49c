"""
compliance_crawler.py
Audits merchant websites from a spreadsheet for the mandated policy pages and
the proprietor's legal name, writes the verdicts back to a workbook and drafts
remediation emails for merchants that can fix their site.

USAGE
-----
1) Install deps (ideally in a virtualenv):
    pip install -e .
    playwright install chromium

2) Run against a workbook (first sheet; columns Website, MerchantType,
   EntityType, LegalName, Email), or pass --url repeatedly:
    python compliance_crawler.py --input input.xlsx --output output.xlsx
    # or
    python compliance_crawler.py --url https://example.com --output single.xlsx

Outputs:
- output.xlsx        : "Results" sheet (input rows + verdict columns) and, when
                       drafts were written, an "Email Summary" sheet
- output.jsonl       : detailed result per audited merchant
- output_logs.txt    : crawl logs
- emails/            : one draft per merchant that needs to update its site

NOTES
-----
- Merchants are audited one at a time with a fixed delay between them.
- --static swaps the headless browser for plain HTTP fetching; faster, but
  misses links rendered by JavaScript.
"""
import argparse
import json
import logging
import os
import time
from typing import Dict, List, Optional, Tuple

import pandas as pd

from browser_session import NAV_TIMEOUT, BrowsingSession, PlaywrightSession, StaticSession
from email_drafts import compose_email, save_email
from policy_checker import AuditResult, MerchantProfile, WebsiteAuditor

# ----------------------------- Config ----------------------------------

DEFAULT_INPUT = "input.xlsx"
DEFAULT_OUTPUT = "output.xlsx"
DEFAULT_EMAIL_DIR = "emails"
SLEEP_BETWEEN_SITES = 2.0  # seconds

# -----------------------------------------------------------------------


def _cell(row: Dict[str, object], *names: str) -> str:
    for name in names:
        value = row.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def profile_from_row(row: Dict[str, object]) -> MerchantProfile:
    return MerchantProfile(
        website=_cell(row, "Website", "website"),
        merchant_type_raw=_cell(row, "MerchantType", "merchantType") or "goods",
        entity_type_raw=_cell(row, "EntityType", "entityType") or "proprietorship",
        legal_name=_cell(row, "LegalName", "legalName"),
        email=_cell(row, "Email", "email"),
    )


def read_merchants(path: str) -> List[Dict[str, object]]:
    if path.lower().endswith(".csv"):
        df = pd.read_csv(path, dtype=str)
    else:
        df = pd.read_excel(path, sheet_name=0, dtype=str, engine="openpyxl")
    return df.fillna("").to_dict("records")


def read_inputs(args) -> List[Dict[str, object]]:
    rows = [{"Website": u.strip()} for u in (args.url or []) if u.strip()]
    if args.input:
        rows.extend(read_merchants(args.input))
    elif not rows:
        rows.extend(read_merchants(DEFAULT_INPUT))
    return rows


def annotate_row(
    row: Dict[str, object],
    index: int,
    profile: MerchantProfile,
    result: AuditResult,
    emails_dir: str,
) -> Optional[Dict[str, object]]:
    """Copy the verdict onto the row and write a draft email when one is due."""
    row.update(result.to_row())
    row["EmailGenerated"] = "NO"
    row["EmailFilename"] = ""
    if not result.needs_email(profile.email):
        return None

    draft = compose_email(
        profile.website,
        profile.legal_name,
        profile.email,
        result.missing_policies,
        profile.entity_type_raw,
    )
    filename = save_email(emails_dir, profile.website, draft, index)
    row["EmailGenerated"] = "YES"
    row["EmailFilename"] = filename
    return {
        "Website": profile.website,
        "Email": profile.email,
        "MissingPolicies": ", ".join(result.missing_policies),
        "EmailFile": os.path.join(emails_dir, filename),
        "Status": "Ready to Send",
    }


def run_batch(
    session: BrowsingSession,
    rows: List[Dict[str, object]],
    emails_dir: str = DEFAULT_EMAIL_DIR,
    delay: float = SLEEP_BETWEEN_SITES,
) -> Tuple[List[AuditResult], List[Dict[str, object]]]:
    """Audit every row in order, annotating rows in place."""
    auditor = WebsiteAuditor(session)
    reports: List[AuditResult] = []
    emails: List[Dict[str, object]] = []

    for i, row in enumerate(rows):
        profile = profile_from_row(row)
        if not profile.website:
            logging.info("Skipping row %d: no website URL", i + 1)
            continue

        logging.info("Processing %d/%d: %s", i + 1, len(rows), profile.website)
        result = auditor.audit(profile)
        reports.append(result)
        try:
            email = annotate_row(row, i, profile, result, emails_dir)
        except Exception as e:
            logging.warning("Reporting failed %s: %s", profile.website, e)
            row["Error"] = str(e)
            row["EmailGenerated"] = "NO"
            row["EmailFilename"] = ""
        else:
            if email:
                emails.append(email)

        if delay > 0:
            time.sleep(delay)

    return reports, emails


def output_paths(output: str) -> Tuple[str, str]:
    stem = os.path.splitext(output)[0]
    return f"{stem}.jsonl", f"{stem}_logs.txt"


def write_outputs(
    output: str,
    rows: List[Dict[str, object]],
    reports: List[AuditResult],
    emails: List[Dict[str, object]],
):
    jsonl_path, _ = output_paths(output)

    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Results", index=False)
        if emails:
            pd.DataFrame(emails).to_excel(writer, sheet_name="Email Summary", index=False)

    with open(jsonl_path, "w", encoding="utf-8") as f:
        for r in reports:
            f.write(json.dumps(r.to_json(), ensure_ascii=False) + "\n")

    logging.info("Wrote %s and %s", output, jsonl_path)


def print_summary(rows: List[Dict[str, object]], emails: List[Dict[str, object]], output: str):
    print(f"\nDone! Results saved to {output}")

    manual = [r for r in rows if r.get("ManualCheckingRequired") == "YES"]
    if manual:
        print(f"\n=== MANUAL CHECKING REQUIRED ({len(manual)} sites) ===")
        for n, row in enumerate(manual, 1):
            print(f"{n}. {_cell(row, 'Website', 'website')} - No relevant policies found")
        print("Please manually check these websites as the crawler couldn't find any policies.")

    if emails:
        print(f"\n=== EMAILS GENERATED ({len(emails)} sites) ===")
        for n, email in enumerate(emails, 1):
            print(f"{n}. {email['Website']}")
            print(f"   To: {email['Email']}")
            print(f"   Missing: {email['MissingPolicies']}")
            print(f"   File: {email['EmailFile']}\n")
    else:
        print("\nNo emails were generated (all sites either passed, require manual checking, or have no email).")


def main(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Merchant website policy compliance crawler")
    p.add_argument("--input", help=f"Workbook (.xlsx) or CSV with one merchant per row (default {DEFAULT_INPUT})")
    p.add_argument("--url", action="append", help="Single website URL (can repeat)")
    p.add_argument("--output", default=DEFAULT_OUTPUT, help="Output workbook path")
    p.add_argument("--emails-dir", default=DEFAULT_EMAIL_DIR, help="Folder for draft emails")
    p.add_argument("--delay", type=float, default=SLEEP_BETWEEN_SITES, help="Seconds between merchants")
    p.add_argument("--timeout", type=float, default=NAV_TIMEOUT, help="Navigation timeout in seconds")
    p.add_argument("--static", action="store_true", help="Fetch pages over plain HTTP instead of a headless browser")
    args = p.parse_args(argv)

    _, log_path = output_paths(args.output)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=[logging.FileHandler(log_path), logging.StreamHandler()],
    )

    try:
        rows = read_inputs(args)
    except (OSError, ValueError) as e:
        p.error(f"Cannot read merchant input: {e}")
    if not rows:
        p.error("No merchants provided. Use --input or --url.")

    logging.info("Processing %d websites...", len(rows))
    session = StaticSession(timeout=args.timeout) if args.static else PlaywrightSession(timeout=args.timeout)
    with session:
        reports, emails = run_batch(session, rows, args.emails_dir, args.delay)

    write_outputs(args.output, rows, reports, emails)
    print_summary(rows, emails, args.output)


if __name__ == "__main__":
    main()
