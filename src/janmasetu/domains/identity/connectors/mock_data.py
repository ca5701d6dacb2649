"""Mock registration data generators for development and testing.

Every generator takes a seed (or a ``random.Random``) so the same seed always
yields the same figures. Nothing in the engine itself draws random numbers.
"""

from __future__ import annotations

import hashlib
import random
from datetime import date, timedelta

from janmasetu.domains.identity.domain_logic.models import BirthEvent, DistrictStats

DEFAULT_STATE = "KA"
DEFAULT_DISTRICTS = ("BLR-URBAN", "MYSURU", "TUMAKURU", "BELAGAVI", "KALABURAGI")

_GIVEN_NAMES = ("Aarav", "Ananya", "Diya", "Ishaan", "Kavya", "Meera", "Rohan", "Saanvi", "Vihaan")
_FAMILY_NAMES = ("Gowda", "Hegde", "Kulkarni", "Naik", "Patil", "Rao", "Shetty")
_MOTHER_NAMES = ("Lakshmi", "Priya", "Radha", "Sunita", "Asha", "Geetha")
_FATHER_NAMES = ("Mahesh", "Ravi", "Suresh", "Prakash", "Anil", "Venkatesh")


def phonetic_key(name: str) -> str:
    """Stand-in phonetic hash: vowels and doubled letters dropped before hashing."""
    squeezed = []
    for ch in name.casefold():
        if not ch.isalpha() or ch in "aeiouy":
            continue
        if squeezed and squeezed[-1] == ch:
            continue
        squeezed.append(ch)
    return hashlib.sha256("".join(squeezed).encode("utf-8")).hexdigest()[:32]


def generate_birth_event(
    rng: random.Random,
    *,
    birth_date: date,
    district_code: str = DEFAULT_DISTRICTS[0],
    state_code: str = DEFAULT_STATE,
    institutional: bool = True,
) -> BirthEvent:
    """One plausible birth registration drawn from ``rng``."""
    family = rng.choice(_FAMILY_NAMES)
    child = f"{rng.choice(_GIVEN_NAMES)} {family}"
    serial = rng.randrange(10**8)
    return BirthEvent(
        birth_id=f"BR-{state_code}-{birth_date:%Y%m%d}-{serial:08d}",
        birth_date=birth_date,
        hospital_code=f"HOSP-{district_code}-{rng.randint(1, 40):03d}" if institutional else "",
        district_code=district_code,
        state_code=state_code,
        child_name=child,
        gender=rng.choice(("M", "F")),
        birth_weight=round(rng.uniform(2.2, 4.2), 2),
        parent_identity_ref=f"PARENT-{rng.randrange(10**10):010d}" if rng.random() < 0.8 else None,
        mother_name=f"{rng.choice(_MOTHER_NAMES)} {family}",
        father_name=f"{rng.choice(_FATHER_NAMES)} {family}" if rng.random() < 0.9 else None,
        name_variants=(child.replace(" ", ""),),
        phonetic_hash=phonetic_key(child),
    )


def generate_birth_events(
    count: int,
    *,
    seed: int | None = None,
    start: date = date(2026, 1, 1),
    districts: tuple[str, ...] = DEFAULT_DISTRICTS,
) -> list[BirthEvent]:
    rng = random.Random(seed)
    return [
        generate_birth_event(
            rng,
            birth_date=start + timedelta(days=rng.randrange(28)),
            district_code=rng.choice(districts),
            institutional=rng.random() < 0.9,
        )
        for _ in range(count)
    ]


def generate_district_stats(
    *,
    seed: int | None = None,
    districts: tuple[str, ...] = DEFAULT_DISTRICTS,
) -> dict[str, DistrictStats]:
    """Monthly registration aggregates; most districts sit near their average."""
    rng = random.Random(seed)
    stats: dict[str, DistrictStats] = {}
    for district in districts:
        avg = rng.randint(300, 1500)
        births = round(avg * rng.uniform(0.85, 1.25))
        stats[district] = DistrictStats(
            births=births,
            avg_births=float(avg),
            parent_duplicates=rng.randint(0, 12),
            out_of_district_births=rng.randint(0, births // 5),
            inconsistent_records=rng.randint(0, births // 40),
        )
    return stats


def generate_cohort_sizes(
    *,
    seed: int | None = None,
    districts: tuple[str, ...] = DEFAULT_DISTRICTS,
) -> dict[str, int]:
    """Annual birth cohort size per district."""
    rng = random.Random(seed)
    return {district: rng.randint(2_000, 30_000) for district in districts}
