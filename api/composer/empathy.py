"""Empathetic framing for athletes in a non-neutral emotional state."""

from typing import Dict, List, Optional

from libs.common.settings import get_settings

MENTAL_HEALTH_RESOURCE = (
    "USOPC Mental Health Support: contact the USOPC Athlete Services team or call the "
    "Mental Health Helpline at 1-888-602-9002 for free, confidential support."
)

EMPATHY_PREAMBLES: Dict[str, str] = {
    "neutral": "",
    "distressed": (
        "I hear you, and what you're feeling is valid. You are not alone in this, and support "
        f"is available.\n\n{MENTAL_HEALTH_RESOURCE}\n\nHere's what I can share about your situation:\n\n"
    ),
    "panicked": (
        "I understand this feels overwhelming right now. Take a breath. There are concrete "
        "steps you can take, and I'll walk you through them.\n\n"
    ),
    "fearful": (
        "Retaliation protections exist to keep you safe, and there are confidential ways to get "
        "help. You have the right to speak up without fear of losing your place.\n\n"
    ),
}

TONE_GUIDANCE: Dict[str, str] = {
    "distressed": (
        "\n\nTONE: The athlete is distressed. Be warm and supportive, acknowledge their feelings "
        "before procedure, and frame action steps as options rather than obligations."
    ),
    "panicked": (
        "\n\nTONE: The athlete is panicked. Use calm, reassuring language, present steps in a "
        "clear numbered order, and avoid alarming wording."
    ),
    "fearful": (
        "\n\nTONE: The athlete is fearful of consequences. Emphasize confidentiality and "
        "anti-retaliation protections, and frame reporting as a safe, protected action."
    ),
}

_PANICKED_ACKNOWLEDGMENTS: Dict[str, str] = {
    "safesport": (
        "I understand this feels overwhelming right now. If you or someone else is in immediate "
        "danger, please call 911 first."
    ),
    "anti_doping": (
        "I understand this feels urgent. The anti-doping process has specific steps and "
        "timelines, and knowing them will help you feel more in control."
    ),
    "dispute_resolution": (
        "I know this feels urgent, but dispute processes have defined timelines and there are "
        "concrete steps you can take right now."
    ),
    "team_selection": (
        "I understand the urgency you're feeling. Selection decisions have specific review "
        "processes and timelines."
    ),
}

_DEFAULT_ACKNOWLEDGMENT = EMPATHY_PREAMBLES["panicked"].strip()

_SAFETY_RESOURCES: Dict[str, List[str]] = {
    "safesport": ["U.S. Center for SafeSport: 833-5US-SAFE (833-587-7233)"],
    "anti_doping": ["USADA: 1-866-601-2632"],
}

_OMBUDS_RESOURCE = "Athlete Ombuds: 719-866-5000, ombudsman@usathlete.org"
_MENTAL_HEALTH_LINE = "USOPC Mental Health Helpline: 1-888-602-9002"


def get_empathy_preamble(emotional_state: Optional[str]) -> str:
    return EMPATHY_PREAMBLES.get(emotional_state or "neutral", "")


def with_empathy(answer: str, emotional_state: Optional[str]) -> str:
    """Prefix ``answer`` with the preamble for the state; no-op for neutral or when disabled."""
    if not get_settings().feature_emotional_support:
        return answer
    preamble = get_empathy_preamble(emotional_state)
    return preamble + answer if preamble else answer


def get_tone_guidance(emotional_state: Optional[str]) -> str:
    return TONE_GUIDANCE.get(emotional_state or "neutral", "")


def get_safety_resources(domain: Optional[str]) -> List[str]:
    """Hotlines for ``domain``; every list ends with the mental health line."""
    resources = list(_SAFETY_RESOURCES.get(domain or "", [_OMBUDS_RESOURCE]))
    resources.append(_MENTAL_HEALTH_LINE)
    return resources


def build_support_message(emotional_state: str, domain: Optional[str]) -> str:
    """Direct response for an athlete in acute distress."""
    acknowledgment = _PANICKED_ACKNOWLEDGMENTS.get(domain or "", _DEFAULT_ACKNOWLEDGMENT)
    if emotional_state != "panicked":
        acknowledgment = get_empathy_preamble(emotional_state).strip() or acknowledgment

    resources = "\n".join(f"- {resource}" for resource in get_safety_resources(domain))
    return (
        f"{acknowledgment}\n\n"
        "You don't have to sort this out alone. These people can help right now:\n\n"
        f"{resources}\n\n"
        "When you're ready, tell me a little more about what happened, which sport and "
        "organization are involved, and any deadlines you're facing, and I'll walk you "
        "through your options step by step."
    )
