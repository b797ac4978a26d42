"""Context Augmenter: live member / facility / company summaries for the prompt.

Each block is optional.  An absent id, or an id whose record no longer exists,
is skipped silently.  A failing query is *not* skipped: it propagates and
fails the augmentation step.

Two levels of member detail exist:

* ``summary``  — name, care level, medical conditions (family / member agents,
  handoff consultations).
* ``clinical`` — everything a nurse needs: contact, medications, allergies,
  recent vitals, clinical notes, connected devices, plus the alerts and
  tasks the nurse dashboard passes along with the request.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any

from src.models import ConversationContext
from src.services.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

SUMMARY = "summary"
CLINICAL = "clinical"

VITALS_LIMIT = 20
NOTES_LIMIT = 10

_MEMBER_COLUMNS = "*, profiles:user_id (first_name, last_name, phone, email)"

# Substring of the front-end page → what the public sales agent should focus on
PAGE_HINTS: list[tuple[tuple[str, ...], str]] = [
    (
        ("institutional", "commercial"),
        "User is viewing institutional/commercial solutions. Focus on B2B offerings, "
        "volume pricing, enterprise features, and commercial partnerships. Offer to "
        "schedule demos and generate quotes.",
    ),
    (
        ("personal-care",),
        "User is viewing personal care plans. Focus on individual/family memberships, "
        "pricing tiers, and getting started. Offer to capture leads and answer pricing "
        "questions.",
    ),
    (
        ("devices",),
        "User is viewing our device catalog. Focus on device features, specifications, "
        "pricing, and compatibility. Help them understand which devices best suit their "
        "needs.",
    ),
    (
        ("nurses",),
        "User is learning about our nursing team. Focus on nurse qualifications, 24/7 "
        "availability, response protocols, and the human care element of our service.",
    ),
]


def _format_dt(iso_str: str | None) -> str:
    """Convert an ISO 8601 string to 'Mon 17 Feb 2026 at 10:30' (raw string if unparseable)."""
    if not iso_str:
        return "N/A"
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str
    return dt.strftime("%a %d %b %Y at %H:%M")


def _or_na(value: Any) -> Any:
    return value if value not in (None, "") else "N/A"


def page_hint(page: str | None) -> str:
    """Return the context line for the visitor's current page ("" if none applies)."""
    if not page:
        return ""
    for needles, hint in PAGE_HINTS:
        if any(needle in page for needle in needles):
            return f"\n\nCONTEXT: {hint}"
    return ""


class ContextAugmenter:
    def __init__(self, supabase: SupabaseClient, *, max_workers: int = 3):
        self._supabase = supabase
        self._max_workers = max_workers

    def build(self, context: ConversationContext, detail: str = SUMMARY) -> str:
        """Return the concatenated context blocks for every id present in *context*."""
        jobs = []
        if context.member_id:
            jobs.append(lambda: self.member_block(context, detail))
        if context.facility_id:
            jobs.append(lambda: self.facility_block(context.facility_id))
        if context.company_id:
            jobs.append(lambda: self.company_block(context.company_id))
        if not jobs:
            return ""

        # Independent lookups: fan out, then join in a fixed order
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            futures = [pool.submit(job) for job in jobs]
            blocks = [future.result() for future in futures]
        return "".join(blocks)

    # ── Member ───────────────────────────────────────────────────────

    def member_block(self, context: ConversationContext, detail: str = SUMMARY) -> str:
        member = self._supabase.select_one(
            "members", columns=_MEMBER_COLUMNS, filters={"id": f"eq.{context.member_id}"},
        )
        if not member:
            logger.info("Member %s not found; skipping member context", context.member_id)
            return ""

        profile = member.get("profiles") or {}
        name = " ".join(
            part for part in (profile.get("first_name"), profile.get("last_name")) if part
        ) or "Unknown"
        lines = ["\n\n=== MEMBER CONTEXT ===", f"Member: {name}"]

        if detail == CLINICAL:
            lines.append(f"Contact: {_or_na(profile.get('phone'))}")
            lines.append(f"Date of Birth: {_or_na(member.get('date_of_birth'))}")
        lines.append(f"Care Level: {_or_na(member.get('care_level'))}")
        if detail == CLINICAL:
            lines.append(f"Mobility: {_or_na(member.get('mobility_level'))}")
        if member.get("medical_conditions"):
            lines.append(f"Conditions: {json.dumps(member['medical_conditions'])}")

        if detail == CLINICAL:
            lines.extend(self._clinical_lines(member, context))

        lines.append("=== END MEMBER CONTEXT ===\n")
        return "\n".join(lines)

    def _clinical_lines(self, member: dict[str, Any], context: ConversationContext) -> list[str]:
        member_id = context.member_id
        lines: list[str] = []
        if member.get("medications"):
            lines.append(f"Current Medications: {json.dumps(member['medications'])}")
        if member.get("allergies"):
            lines.append(f"ALLERGIES: {json.dumps(member['allergies'])}")
        if member.get("emergency_contact_name"):
            relationship = _or_na(member.get("emergency_contact_relationship"))
            lines.append(
                f"Emergency Contact: {member['emergency_contact_name']} ({relationship})"
            )
            lines.append(f"Emergency Phone: {_or_na(member.get('emergency_contact_phone'))}")

        vitals = self._supabase.select(
            "health_metrics",
            filters={"member_id": f"eq.{member_id}"},
            order="recorded_at.desc",
            limit=VITALS_LIMIT,
        )
        if vitals:
            lines.append(f"--- Recent Vitals (last {len(vitals)} readings) ---")
            for v in vitals:
                unit = f" {v['metric_unit']}" if v.get("metric_unit") else ""
                when = _format_dt(v.get("recorded_at") or v.get("created_at"))
                lines.append(f"{v.get('metric_type')}: {v.get('metric_value')}{unit} ({when})")

        notes = self._supabase.select(
            "clinical_notes",
            filters={"member_id": f"eq.{member_id}"},
            order="created_at.desc",
            limit=NOTES_LIMIT,
        )
        if notes:
            lines.append(f"--- Clinical Notes (last {len(notes)}) ---")
            for n in notes:
                lines.append(f"[{n.get('note_type') or 'General'}] {n.get('content')}")
                lines.append(f"By: {n.get('author_id')} on {_format_dt(n.get('created_at'))}")

        devices = self._supabase.select(
            "member_devices", filters={"member_id": f"eq.{member_id}"},
        )
        if devices:
            lines.append("--- Connected Devices ---")
            for d in devices:
                lines.append(
                    f"{d.get('device_name')} ({d.get('device_type')}): {d.get('device_status')}"
                )
                if d.get("battery_level"):
                    lines.append(f"  Battery: {d['battery_level']}%")
                if d.get("last_sync_at"):
                    lines.append(f"  Last Sync: {_format_dt(d['last_sync_at'])}")

        if context.alerts:
            lines.append(f"--- Active Alerts ---\n{json.dumps(context.alerts, indent=2)}")
        if context.tasks:
            lines.append(f"--- Pending Tasks ---\n{json.dumps(context.tasks, indent=2)}")
        return lines

    # ── Facility / company ───────────────────────────────────────────

    def facility_block(self, facility_id: str) -> str:
        facility = self._supabase.select_one("facilities", filters={"id": f"eq.{facility_id}"})
        if not facility:
            logger.info("Facility %s not found; skipping facility context", facility_id)
            return ""

        residents = self._supabase.count(
            "facility_residents",
            filters={"facility_id": f"eq.{facility_id}", "discharge_date": "is.null"},
        )
        staff = self._supabase.count("facility_staff", filters={"facility_id": f"eq.{facility_id}"})
        return "\n".join([
            "\n\n=== FACILITY CONTEXT ===",
            f"Facility: {facility.get('name')}",
            f"Type: {_or_na(facility.get('facility_type'))}",
            f"Capacity: {_or_na(facility.get('bed_capacity'))} beds",
            f"Current Residents: {residents}",
            f"Staff Members: {staff}",
            "=== END FACILITY CONTEXT ===\n",
        ])

    def company_block(self, company_id: str) -> str:
        company = self._supabase.select_one("care_companies", filters={"id": f"eq.{company_id}"})
        if not company:
            logger.info("Company %s not found; skipping company context", company_id)
            return ""

        return "\n".join([
            "\n\n=== COMPANY CONTEXT ===",
            f"Company: {company.get('name')}",
            f"Type: {_or_na(company.get('company_type'))}",
            f"Total Staff: {company.get('total_staff') or 0}",
            f"Total Clients: {company.get('total_clients') or 0}",
            "=== END COMPANY CONTEXT ===\n",
        ])
