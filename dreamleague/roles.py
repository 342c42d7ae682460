"""
Canonical playing roles. The football API reports positions as free text
("Goalkeeper", "Centre-Back", "G", "Attacker"...); everything downstream uses Role.
"""
from __future__ import annotations

from enum import Enum


# ---------- Role enum (exactly these 4) ----------


class Role(str, Enum):
    GOALKEEPER = "Goalkeeper"
    DEFENDER = "Defender"
    MIDFIELDER = "Midfielder"
    ATTACKER = "Attacker"


# Short codes used by the API ("G", "D", "M", "F") and by Spanish squad slots
_ROLE_CODES: dict[str, Role] = {
    "g": Role.GOALKEEPER,
    "gk": Role.GOALKEEPER,
    "por": Role.GOALKEEPER,
    "d": Role.DEFENDER,
    "def": Role.DEFENDER,
    "m": Role.MIDFIELDER,
    "mid": Role.MIDFIELDER,
    "cen": Role.MIDFIELDER,
    "f": Role.ATTACKER,
    "fw": Role.ATTACKER,
    "del": Role.ATTACKER,
}


def normalize_role(position: str | None) -> Role:
    """
    Map a free-text position to a Role. Unknown or empty -> Midfielder.
    Goalkeeper only on an explicit "goal"/"keeper" match or code.
    """
    text = (position or "").strip().lower()
    if not text:
        return Role.MIDFIELDER
    if text in _ROLE_CODES:
        return _ROLE_CODES[text]
    if "goal" in text or "keeper" in text:
        return Role.GOALKEEPER
    if "defen" in text or "back" in text:
        return Role.DEFENDER
    if "midfield" in text:
        return Role.MIDFIELDER
    if any(k in text for k in ("attack", "forward", "striker", "wing")):
        return Role.ATTACKER
    return Role.MIDFIELDER
