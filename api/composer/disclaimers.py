"""Domain-specific disclaimer text appended to answers."""

from typing import Dict, Optional

GENERAL_DISCLAIMER = (
    "This information is for educational purposes only and does not constitute legal advice. "
    "For personalized guidance, consult the Athlete Ombuds or qualified legal counsel."
)

_OMBUDS_CONTACT = "the Athlete Ombuds at ombudsman@usathlete.org or 719-866-5000"

DISCLAIMERS: Dict[str, str] = {
    "team_selection": (
        GENERAL_DISCLAIMER
        + "\n\nTeam selection procedures vary by sport and event. Always refer to your NGB's "
        "published selection procedures for the competition in question. If you believe a "
        f"selection decision was made in error, contact {_OMBUDS_CONTACT}."
    ),
    "dispute_resolution": (
        GENERAL_DISCLAIMER
        + "\n\nFor help with disputes, including Section 9 arbitration and grievance procedures, "
        f"contact {_OMBUDS_CONTACT}. The Ombuds provides free, confidential and independent advice."
    ),
    "safesport": (
        "If you are in immediate danger, call 911. To report abuse or misconduct in sport, contact "
        "the U.S. Center for SafeSport at https://uscenterforsafesport.org/report-a-concern/ or "
        "call 833-5US-SAFE (833-587-7233). Reports can be made anonymously.\n\n"
        + GENERAL_DISCLAIMER
    ),
    "anti_doping": (
        GENERAL_DISCLAIMER
        + "\n\nFor questions about Therapeutic Use Exemptions, whereabouts or testing, contact USADA "
        "at https://www.usada.org or 1-866-601-2632. If you have been notified of a potential "
        "anti-doping rule violation, seek legal counsel immediately."
    ),
    "eligibility": (
        GENERAL_DISCLAIMER
        + "\n\nEligibility requirements vary by sport, competition level and governing body. "
        f"Contact your NGB directly or {_OMBUDS_CONTACT}."
    ),
    "governance": (
        GENERAL_DISCLAIMER
        + "\n\nFor governance and representation concerns, contact the Team USA Athletes' "
        "Commission at https://www.usopc.org/voice-and-representation or your NGB's athlete "
        "representative."
    ),
    "athlete_rights": (
        GENERAL_DISCLAIMER
        + "\n\nFor questions about athlete rights and representation, contact the Team USA "
        "Athletes' Commission at https://www.usopc.org/voice-and-representation. For marketing "
        f"and sponsorship rights, {_OMBUDS_CONTACT} can help."
    ),
}

DISCLAIMER_SEPARATOR = "\n\n---\n\n"


def get_disclaimer(domain: Optional[str]) -> str:
    """Disclaimer for ``domain``; the general text when none is specific."""
    if domain and domain in DISCLAIMERS:
        return DISCLAIMERS[domain]
    return GENERAL_DISCLAIMER
