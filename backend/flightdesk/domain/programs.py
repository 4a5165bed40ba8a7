"""Certification programs and the default progress a new student starts with.

Requirement hours are the school's published minimums per certificate. The
Total Flight Time entry is derived, so the seeded value is recomputed from
the other requirements rather than taken from the table.
"""

from copy import deepcopy

from flightdesk.domain.requirements import recompute_total
from flightdesk.schemas.progress import Milestone, Requirement, Stage, StudentProgress

# {program_key: {"name": str, "requirements": [(name, hours, category)]}}
CERTIFICATION_PROGRAMS: dict[str, dict] = {
    "privatePilot": {
        "name": "Private Pilot",
        "requirements": [
            ("Total Flight Time", 40, "Standard"),
            ("Dual Instruction", 20, "Key"),
            ("Solo Flight Time", 10, "Key"),
            ("Cross-Country (Dual)", 3, "Standard"),
            ("Cross-Country (Solo)", 5, "Key"),
            ("Night Flight", 3, "Key"),
            ("Instrument Training", 3, "Standard"),
            ("Pre-Solo Training", 3, "Standard"),
            ("Test Preparation", 3, "Standard"),
        ],
    },
    "instrumentRating": {
        "name": "Instrument Rating",
        "requirements": [
            ("Total Flight Time", 0, "Standard"),
            ("Total Instrument Time", 40, "Key"),
            ("Instrument Flight Training", 15, "Key"),
            ("Cross-Country Instrument", 3, "Standard"),
            ("Practical Test Preparation", 3, "Standard"),
        ],
    },
    "commercialPilot": {
        "name": "Commercial Pilot",
        "requirements": [
            ("Total Flight Time", 250, "Standard"),
            ("Pilot in Command", 100, "Key"),
            ("Cross-Country (PIC)", 50, "Key"),
            ("Night Flight (PIC)", 10, "Key"),
            ("Instrument Flight", 10, "Standard"),
            ("Complex Aircraft", 10, "Standard"),
            ("Dual Commercial Training", 20, "Standard"),
            ("Test Preparation", 3, "Standard"),
        ],
    },
}

TRAINING_STAGES: list[tuple[str, str]] = [
    ("Pre-Solo", "Basic maneuvers, pattern work and emergency procedures"),
    ("Solo", "Supervised solo flights in the local area"),
    ("Cross-Country", "Dual and solo cross-country navigation"),
    ("Maneuvers", "Performance maneuvers to practical test standards"),
    ("Checkride Prep", "Mock checkride and oral exam review"),
    ("Checkride", "Practical test with an examiner"),
    ("Complete", "Certificate issued"),
]

DEFAULT_MILESTONES: list[tuple[str, str]] = [
    ("First Solo Flight", "Student flies the aircraft without an instructor on board"),
    ("Solo Cross-Country", "Solo flight with a landing more than 50 nm from departure"),
    ("Knowledge Test Passed", "Written exam passed with an endorsement on file"),
    ("Checkride Passed", "Practical test completed successfully"),
]


def get_program(program_key: str) -> dict:
    """Return a deep copy of a certification program definition.

    Raises:
        ValueError: If program_key is not a known program
    """
    if program_key not in CERTIFICATION_PROGRAMS:
        raise ValueError(
            f"Unknown program: {program_key}. Valid programs: {sorted(CERTIFICATION_PROGRAMS)}"
        )
    return deepcopy(CERTIFICATION_PROGRAMS[program_key])


def build_default_progress(program_key: str) -> StudentProgress:
    """Progress for a newly enrolled student: nothing flown, nothing completed."""
    program = get_program(program_key)

    requirements = [
        Requirement(
            id=f"req-{order}",
            name=name,
            total_hours=hours,
            completed_hours=0,
            is_custom=False,
            category=category,
            order=order,
        )
        for order, (name, hours, category) in enumerate(program["requirements"], start=1)
    ]
    milestones = [
        Milestone(id=f"milestone-{order}", name=name, description=description, order=order)
        for order, (name, description) in enumerate(DEFAULT_MILESTONES, start=1)
    ]
    stages = [
        Stage(id=f"stage-{order}", name=name, description=description, order=order)
        for order, (name, description) in enumerate(TRAINING_STAGES, start=1)
    ]

    return StudentProgress(
        requirements=recompute_total(requirements),
        milestones=milestones,
        stages=stages,
    )
