"""Job order statuses and the transitions allowed between them.

OG  on going            WP  waiting parts        UA  unassigned
QI  quality inspection  HC  hold customer        HW  hold warranty
HI  hold insurance      HF  hold Ford            SU  sublet
FR  for release         FU  finished unclaimed   CP  complete
"""

JOB_STATUSES = ("OG", "WP", "UA", "QI", "HC", "HW", "HI", "HF", "SU", "FR", "FU", "CP")

FINISHED_STATUSES = ("FR", "FU", "CP")
ON_HOLD_STATUSES = ("HC", "HW", "HI", "WP")

VALID_STATUS_TRANSITIONS = {
    "OG": ["WP", "UA", "QI", "HC", "HW", "HI", "HF", "SU", "OG"],
    "WP": ["UA", "OG", "HC", "HW", "HI", "HF", "SU", "WP"],
    "UA": ["OG", "WP", "UA"],
    "QI": ["FR", "OG", "QI"],
    "HC": ["OG", "WP", "UA", "HC"],
    "HW": ["OG", "WP", "UA", "HW"],
    "HI": ["OG", "WP", "UA", "HI"],
    "HF": ["OG", "WP", "UA", "HF"],
    "SU": ["OG", "WP", "UA", "SU"],
    "FR": ["FU", "CP", "OG", "FR"],
    "FU": ["CP", "FU"],
    "CP": ["CP"],
}


def can_transition(current: str, new: str) -> bool:
    return new in VALID_STATUS_TRANSITIONS.get(current, [])


def initial_status(requested, parts) -> str:
    """Any unavailable part forces a new job into waiting-parts."""
    if parts and any(p["availability"] == "Unavailable" for p in parts):
        return "WP"
    return requested or "OG"


def all_parts_unavailable(parts) -> bool:
    return bool(parts) and all(p["availability"] == "Unavailable" for p in parts)
