"""Escalation directory and referral messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from api.schemas.agent_state import EscalationInfo


@dataclass(frozen=True)
class EscalationTarget:
    id: str
    organization: str
    domains: Tuple[str, ...]
    urgency_default: str
    description: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_url: Optional[str] = None


ATHLETE_OMBUDS = EscalationTarget(
    id="athlete_ombuds",
    organization="Athlete Ombuds",
    domains=("dispute_resolution", "team_selection", "eligibility", "governance", "athlete_rights"),
    urgency_default="standard",
    description=(
        "Free, confidential and independent advice on disputes, team selection, eligibility "
        "and athlete rights. The Ombuds can explain your options and help you through "
        "resolution processes."
    ),
    contact_email="ombudsman@usathlete.org",
    contact_phone="719-866-5000",
    contact_url="https://www.usathlete.org",
)

ESCALATION_TARGETS: List[EscalationTarget] = [
    ATHLETE_OMBUDS,
    EscalationTarget(
        id="safesport_center",
        organization="U.S. Center for SafeSport",
        domains=("safesport",),
        urgency_default="immediate",
        description=(
            "The exclusive authority for reports of sexual, emotional and physical misconduct, "
            "bullying, hazing and harassment in Olympic and Paralympic sport. Reports can be "
            "made anonymously."
        ),
        contact_phone="833-5US-SAFE (833-587-7233)",
        contact_url="https://uscenterforsafesport.org/report-a-concern/",
    ),
    EscalationTarget(
        id="usada",
        organization="U.S. Anti-Doping Agency (USADA)",
        domains=("anti_doping",),
        urgency_default="immediate",
        description=(
            "Handles testing, Therapeutic Use Exemptions, whereabouts and anti-doping rule "
            "violations for U.S. Olympic and Paralympic athletes."
        ),
        contact_phone="1-866-601-2632",
        contact_url="https://www.usada.org",
    ),
    EscalationTarget(
        id="athletes_commission",
        organization="Team USA Athletes' Commission",
        domains=("governance", "athlete_rights"),
        urgency_default="standard",
        description="Represents athlete interests within USOPC governance.",
        contact_email="teamusa.ac@teamusa-ac.org",
        contact_url="https://www.usopc.org/teamusa-athletes-commission",
    ),
    EscalationTarget(
        id="cas",
        organization="Court of Arbitration for Sport (CAS)",
        domains=("dispute_resolution",),
        urgency_default="standard",
        description=(
            "Hears appeals of decisions by sports organizations. Strict filing deadlines apply, "
            "typically 21 days from the decision being appealed."
        ),
        contact_url="https://www.tas-cas.org",
    ),
    EscalationTarget(
        id="emergency_services",
        organization="Emergency Services",
        domains=("safesport",),
        urgency_default="immediate",
        description=(
            "If you or someone else is in immediate physical danger, call 911 first, then "
            "report to the U.S. Center for SafeSport."
        ),
        contact_phone="911",
    ),
]

IMMEDIATE_DOMAINS = frozenset({"safesport", "anti_doping"})


def get_escalation_targets(domain: Optional[str]) -> List[EscalationTarget]:
    """Targets serving ``domain``; the Athlete Ombuds when none does."""
    targets = [target for target in ESCALATION_TARGETS if domain and domain in target.domains]
    return targets or [ATHLETE_OMBUDS]


def determine_urgency(domain: Optional[str], has_time_constraint: bool) -> str:
    if domain in IMMEDIATE_DOMAINS or has_time_constraint:
        return "immediate"
    return "standard"


def build_escalation(domain: Optional[str], reason: str, has_time_constraint: bool = False) -> EscalationInfo:
    primary = get_escalation_targets(domain)[0]
    return EscalationInfo(
        target=primary.id,
        organization=primary.organization,
        contact_email=primary.contact_email,
        contact_phone=primary.contact_phone,
        contact_url=primary.contact_url,
        reason=reason,
        urgency=determine_urgency(domain, has_time_constraint),
    )


def format_contact_block(target: EscalationTarget) -> str:
    lines = [f"**{target.organization}**"]
    if target.contact_phone:
        lines.append(f"Phone: {target.contact_phone}")
    if target.contact_email:
        lines.append(f"Email: {target.contact_email}")
    if target.contact_url:
        lines.append(f"Website: {target.contact_url}")
    lines.append(target.description)
    return "\n".join(lines)


def build_referral_message(domain: Optional[str], reason: str, urgency: str) -> str:
    """Referral text listing every relevant contact, most relevant first."""
    targets = get_escalation_targets(domain)
    if urgency == "immediate":
        opening = (
            "This sounds like a situation that needs attention right away. "
            "Please reach out to the contacts below as soon as you can."
        )
    else:
        opening = (
            "Based on what you've described, the people below are best placed to help you "
            "with this directly."
        )

    blocks = "\n\n".join(format_contact_block(target) for target in targets)
    return f"{opening}\n\nWhy I'm pointing you here: {reason}\n\n{blocks}"
