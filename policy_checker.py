"""
policy_checker.py
Decides whether a merchant website carries the mandated policy pages (privacy,
terms, shipping, returns, refund, cancellation) and, for sole proprietors,
whether the registered legal name is displayed.

An audit runs four passes over one browsing session:

1) Primary pass   : for each policy in checklist order, follow homepage links whose
                    anchor text carries a hint and keep the first page whose text
                    has a policy keyword.
2) Group pass     : infer grouped policies (shipping/returns/refund/cancellation)
                    from the text of pages already found, without navigating.
3) Verification   : re-fetch the page credited with the legal name and drop the
                    credit if the name is not really there.
4) Fallback       : search visited pages, the homepage and contact/about style
                    pages for the legal name.

All matching is lowercase substring / regex based.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from browser_session import BrowsingSession, Link

# ----------------------------- Config ----------------------------------


class PolicyKind(str, Enum):
    PRIVACY = "privacy"
    TERMS = "terms"
    SHIPPING = "shipping"
    RETURNS = "returns"
    REFUND = "refund"
    CANCELLATION = "cancellation"


class MerchantType(str, Enum):
    GOODS = "goods"
    SERVICES = "services"


class PolicyStatus(str, Enum):
    FOUND = "FOUND"
    MISSING = "MISSING"
    NOT_RELEVANT = "NOT RELEVANT"


class LegalNamePresence(Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    NOT_RELEVANT = "NOT RELEVANT"

    def report_value(self):
        if self is LegalNamePresence.NOT_RELEVANT:
            return self.value
        return self is LegalNamePresence.PRESENT


@dataclass(frozen=True)
class PolicyDefinition:
    anchor_hints: Tuple[str, ...]        # decide which homepage links to follow
    page_keywords: Tuple[str, ...]       # decide whether a fetched page qualifies
    relevant_for: FrozenSet[MerchantType]
    display_name: str


_BOTH = frozenset({MerchantType.GOODS, MerchantType.SERVICES})
_GOODS = frozenset({MerchantType.GOODS})

POLICY_CONFIG: Mapping[PolicyKind, PolicyDefinition] = MappingProxyType({
    PolicyKind.PRIVACY: PolicyDefinition(
        ("privacy",),
        ("privacy policy", "privacy notice", "privacy practices"),
        _BOTH, "Privacy Policy"),
    PolicyKind.TERMS: PolicyDefinition(
        ("terms",),
        ("terms and conditions", "terms & conditions", "terms of use", "terms of service"),
        _BOTH, "Terms and Conditions"),
    PolicyKind.SHIPPING: PolicyDefinition(
        ("shipping", "delivery"),
        ("shipping", "delivery"),
        _GOODS, "Shipping Policy"),
    PolicyKind.RETURNS: PolicyDefinition(
        ("return", "returns"),
        ("return policy", "returns policy", "return"),
        _GOODS, "Returns Policy"),
    PolicyKind.REFUND: PolicyDefinition(
        ("refund",),
        ("refund policy", "refund"),
        _BOTH, "Refund Policy"),
    PolicyKind.CANCELLATION: PolicyDefinition(
        ("cancellation", "cancel"),
        ("cancellation policy", "cancellation", "cancelling", "cancel"),
        _BOTH, "Cancellation Policy"),
})

POLICY_ORDER: Mapping[MerchantType, Tuple[PolicyKind, ...]] = MappingProxyType({
    MerchantType.GOODS: (
        PolicyKind.PRIVACY, PolicyKind.TERMS, PolicyKind.SHIPPING,
        PolicyKind.RETURNS, PolicyKind.REFUND, PolicyKind.CANCELLATION,
    ),
    MerchantType.SERVICES: (
        PolicyKind.PRIVACY, PolicyKind.TERMS, PolicyKind.REFUND, PolicyKind.CANCELLATION,
    ),
})

# Policies that often share one page and can be inferred from each other
RESOLVABLE_GROUP: Mapping[MerchantType, Tuple[PolicyKind, ...]] = MappingProxyType({
    MerchantType.GOODS: (
        PolicyKind.SHIPPING, PolicyKind.RETURNS, PolicyKind.REFUND, PolicyKind.CANCELLATION,
    ),
    MerchantType.SERVICES: (PolicyKind.REFUND, PolicyKind.CANCELLATION),
})

# Anchor substrings for pages likely to carry a legal name; at most
# FALLBACK_LINKS_PER_CATEGORY links per category are visited.
FALLBACK_CATEGORIES = ("contact", "about", "info", "us", "company")
FALLBACK_LINKS_PER_CATEGORY = 2

LEGAL_NAME_ITEM = "legal name"
PROXIMITY_LIMIT = 200  # characters
ENTITY_SUFFIXES = re.compile(r"\b(?:llc|inc|ltd|corp|corporation|co|company|limited)\b")

# -----------------------------------------------------------------------


@dataclass(frozen=True)
class MerchantProfile:
    website: str
    merchant_type_raw: Optional[str] = None
    entity_type_raw: Optional[str] = None
    legal_name: str = ""
    email: str = ""

    @cached_property
    def merchant_type(self) -> MerchantType:
        return resolve_merchant_type(self.merchant_type_raw)

    @cached_property
    def is_proprietorship(self) -> bool:
        return resolve_proprietorship(self.entity_type_raw)


@dataclass
class PolicyOutcome:
    present: bool = False
    url: Optional[str] = None
    status: PolicyStatus = PolicyStatus.MISSING


@dataclass
class VisitedPage:
    url: str
    text: str
    policy: PolicyKind


@dataclass
class AuditResult:
    website: str
    merchant_type: MerchantType
    is_proprietorship: bool
    policies: Dict[PolicyKind, PolicyOutcome] = field(default_factory=dict)
    legal_name: LegalNamePresence = LegalNamePresence.NOT_RELEVANT
    legal_name_url: Optional[str] = None
    missing_policies: List[str] = field(default_factory=list)
    all_relevant_policies_missing: bool = False
    compliance_status: str = "FAIL"
    error: Optional[str] = None

    @property
    def manual_checking_required(self) -> bool:
        return self.all_relevant_policies_missing

    def needs_email(self, merchant_email: str) -> bool:
        """Drafts go only to failing merchants where the crawl found something usable."""
        return (
            self.compliance_status == "FAIL"
            and not self.all_relevant_policies_missing
            and bool(merchant_email)
            and bool(self.missing_policies)
        )

    def to_row(self) -> Dict[str, object]:
        # Flatten for the spreadsheet
        row = {
            "ComplianceStatus": self.compliance_status,
            "MissingPolicies": ", ".join(self.missing_policies),
            "LegalNamePresent": self.legal_name.report_value(),
            "IsProprietorship": self.is_proprietorship,
            "DeterminedMerchantType": self.merchant_type.value,
            "Error": self.error,
            "ManualCheckingRequired": "YES" if self.manual_checking_required else "NO",
        }
        if self.is_proprietorship:
            row["LegalNameStatus"] = "FOUND" if self.legal_name is LegalNamePresence.PRESENT else "MISSING"
        else:
            row["LegalNameStatus"] = "NOT RELEVANT"
        if self.legal_name_url:
            row["LegalNameURL"] = self.legal_name_url
        for kind in PolicyKind:
            outcome = self.policies[kind]
            label = kind.value.capitalize()
            row[f"{label}Status"] = outcome.status.value
            if outcome.url:
                row[f"{label}URL"] = outcome.url
        return row

    def to_json(self) -> Dict[str, object]:
        return {
            "website": self.website,
            "determined_merchant_type": self.merchant_type.value,
            "is_proprietorship": self.is_proprietorship,
            "policies": {
                kind.value: {"present": o.present, "url": o.url, "status": o.status.value}
                for kind, o in self.policies.items()
            },
            "legal_name_present": self.legal_name.report_value(),
            "legal_name_url": self.legal_name_url,
            "missing_policies": list(self.missing_policies),
            "all_relevant_policies_missing": self.all_relevant_policies_missing,
            "compliance_status": self.compliance_status,
            "error": self.error,
        }


# --------------------------- Text helpers ------------------------------

_WHITESPACE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()


def contains_any(text: str, needles) -> bool:
    return any(n in text for n in needles)


def resolve_merchant_type(raw: Optional[str]) -> MerchantType:
    # Coarse on purpose: "goods_services" and "Good Services Ltd" are goods.
    if not raw:
        return MerchantType.GOODS
    if "good" in normalize(raw):
        return MerchantType.GOODS
    return MerchantType.SERVICES


def resolve_proprietorship(raw: Optional[str]) -> bool:
    # Unknown entity types must display a legal name.
    if not raw:
        return True
    return "proprietor" in normalize(raw)


def is_policy_relevant(kind: PolicyKind, merchant_type: MerchantType) -> bool:
    return merchant_type in POLICY_CONFIG[kind].relevant_for


def _word_pattern(word: str):
    return re.compile(rf"\b{re.escape(word)}\b", re.I)


def contains_legal_name(page_text: Optional[str], legal_name: Optional[str]) -> bool:
    """Exact whole-word match first, then a proximity match on the name's parts.

    Entity suffixes (llc, inc, ltd, ...) are ignored, so "John Doe Traders LLC"
    matches a page that says "John Doe Traders". When the exact form is absent,
    a multi-part name still matches if at least two of its significant parts
    (longer than two characters) occur as whole words within PROXIMITY_LIMIT
    characters of each other. A name with a single significant part matches
    when that part occurs as a whole word.
    """
    if not legal_name or not legal_name.strip():
        return False
    page_text = page_text or ""

    cleaned = ENTITY_SUFFIXES.sub("", normalize(legal_name)).strip()
    if not cleaned:
        return False

    words = cleaned.split()
    exact = re.compile(r"\b" + r"\s+".join(re.escape(w) for w in words) + r"\b", re.I)
    if exact.search(page_text):
        return True

    parts = [p for p in dict.fromkeys(words) if len(p) > 2]
    if len(parts) == 1:
        return bool(_word_pattern(parts[0]).search(page_text))
    if len(parts) < 2:
        return False
    found = [p for p in parts if _word_pattern(p).search(page_text)]
    if len(found) < 2:
        return False

    lower = page_text.lower()
    first = lower.find(found[0])
    last = lower.rfind(found[-1])
    if first == -1 or last == -1:
        return False
    return abs(last - first) < PROXIMITY_LIMIT


def page_satisfies_policy(page_text: str, kind: PolicyKind) -> bool:
    return contains_any(page_text, POLICY_CONFIG[kind].page_keywords)


# --------------------------- Core audit --------------------------------


@dataclass
class _AuditState:
    """Scratch state for one audit; never reported."""
    links: List[Link] = field(default_factory=list)
    page_text: Dict[PolicyKind, str] = field(default_factory=dict)
    visited: List[VisitedPage] = field(default_factory=list)


class WebsiteAuditor:
    """Runs the four audit passes for one merchant at a time on a shared session."""

    def __init__(self, session: BrowsingSession):
        self.session = session

    def audit(self, profile: MerchantProfile) -> AuditResult:
        merchant_type = profile.merchant_type
        result = AuditResult(
            website=profile.website,
            merchant_type=merchant_type,
            is_proprietorship=profile.is_proprietorship,
            legal_name=(
                LegalNamePresence.ABSENT if profile.is_proprietorship
                else LegalNamePresence.NOT_RELEVANT
            ),
        )
        for kind in PolicyKind:
            status = (
                PolicyStatus.MISSING if is_policy_relevant(kind, merchant_type)
                else PolicyStatus.NOT_RELEVANT
            )
            result.policies[kind] = PolicyOutcome(status=status)

        state = _AuditState()
        try:
            if not self.session.navigate(profile.website):
                result.error = "Failed to load website"
                return result
            state.links = [
                Link(normalize(link.text), link.href) for link in self.session.extract_links()
            ]

            self._primary_pass(profile, result, state)
            self._resolve_groups(profile, result, state)
            self._verify_legal_name(profile, result)
            self._comprehensive_search(profile, result, state)
            self._finalize(profile, result)
        except Exception as e:
            logging.warning("Audit failed %s: %s", profile.website, e)
            result.error = str(e)
        return result

    # -- helpers ---------------------------------------------------------

    def _current_text(self) -> str:
        return normalize(self.session.extract_body_text())

    def _wants_legal_name(self, profile: MerchantProfile, result: AuditResult) -> bool:
        return (
            profile.is_proprietorship
            and bool(profile.legal_name)
            and result.legal_name is LegalNamePresence.ABSENT
        )

    def _try_legal_name(self, profile: MerchantProfile, result: AuditResult, text: str, url: str) -> bool:
        if self._wants_legal_name(profile, result) and contains_legal_name(text, profile.legal_name):
            result.legal_name = LegalNamePresence.PRESENT
            result.legal_name_url = url
            logging.info("Legal name found on %s", url)
            return True
        return False

    def _mark_found(self, result: AuditResult, state: _AuditState, kind: PolicyKind, url: str, text: str):
        result.policies[kind] = PolicyOutcome(present=True, url=url, status=PolicyStatus.FOUND)
        state.page_text[kind] = text
        logging.info("%s policy found on %s", kind.value, url)

    # -- passes ----------------------------------------------------------

    def _primary_pass(self, profile: MerchantProfile, result: AuditResult, state: _AuditState):
        for kind in POLICY_ORDER[result.merchant_type]:
            if result.policies[kind].present:
                continue
            hints = POLICY_CONFIG[kind].anchor_hints
            for link in state.links:
                if not link.href or not link.text:
                    continue
                if not contains_any(link.text, hints):
                    continue
                if not self.session.navigate(link.href):
                    continue

                text = self._current_text()
                state.visited.append(VisitedPage(link.href, text, kind))
                if page_satisfies_policy(text, kind):
                    self._mark_found(result, state, kind, link.href, text)
                    self._try_legal_name(profile, result, text, link.href)
                    self.session.navigate(profile.website)
                    break

    def _resolve_groups(self, profile: MerchantProfile, result: AuditResult, state: _AuditState):
        group = RESOLVABLE_GROUP[result.merchant_type]
        # Group pages are consulted first, then any other policy page already found.
        source_order = group + tuple(k for k in POLICY_ORDER[result.merchant_type] if k not in group)

        for _ in range(len(group)):
            sources = [
                k for k in source_order
                if result.policies[k].present and k in state.page_text
            ]
            if not sources:
                break

            resolved = False
            for kind in group:
                if result.policies[kind].present:
                    continue
                for source in sources:
                    text = state.page_text[source]
                    if page_satisfies_policy(text, kind):
                        url = result.policies[source].url
                        self._mark_found(result, state, kind, url, text)
                        self._try_legal_name(profile, result, text, url)
                        resolved = True
                        break
            if not resolved:
                break

    def _verify_legal_name(self, profile: MerchantProfile, result: AuditResult):
        if not (profile.is_proprietorship and result.legal_name is LegalNamePresence.PRESENT):
            return
        if not result.legal_name_url or not self.session.navigate(result.legal_name_url):
            return
        if not contains_legal_name(self._current_text(), profile.legal_name):
            logging.info("Legal name not confirmed on %s, searching again", result.legal_name_url)
            result.legal_name = LegalNamePresence.ABSENT
            result.legal_name_url = None

    def _comprehensive_search(self, profile: MerchantProfile, result: AuditResult, state: _AuditState):
        if not self._wants_legal_name(profile, result):
            return

        for page in state.visited:
            if self._try_legal_name(profile, result, page.text, page.url):
                return

        if self.session.navigate(profile.website):
            if self._try_legal_name(profile, result, self._current_text(), profile.website):
                return

        for category in FALLBACK_CATEGORIES:
            candidates = [link for link in state.links if category in link.text and link.href]
            for link in candidates[:FALLBACK_LINKS_PER_CATEGORY]:
                if not self.session.navigate(link.href):
                    continue
                if self._try_legal_name(profile, result, self._current_text(), link.href):
                    return
                self.session.navigate(profile.website)

    def _finalize(self, profile: MerchantProfile, result: AuditResult):
        order = POLICY_ORDER[result.merchant_type]
        for kind in order:
            if not result.policies[kind].present:
                result.policies[kind].status = PolicyStatus.MISSING
                result.missing_policies.append(kind.value)

        legal_name_required = profile.is_proprietorship and bool(profile.legal_name)
        if legal_name_required and result.legal_name is not LegalNamePresence.PRESENT:
            result.missing_policies.append(LEGAL_NAME_ITEM)

        result.all_relevant_policies_missing = not any(result.policies[k].present for k in order)

        legal_name_ok = (
            not profile.is_proprietorship or result.legal_name is LegalNamePresence.PRESENT
        )
        if all(result.policies[k].present for k in order) and legal_name_ok:
            result.compliance_status = "PASS"
