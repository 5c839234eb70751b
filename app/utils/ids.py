"""Business identifier generation.

Formats:
- company:   0001
- branch:    0001-JED-001-0001 (company, city code, location, branch seq)
- contract:  0001-001 (company, contract seq)
- visit:     VISIT-2025-0001
- emergency: EMG-JED-48213907
- addendum:  ADD-1735689600000-k3j9x0q2a
"""

import re
import secrets
import string
import time
from typing import Iterable, Optional

# Saudi cities as stored on branches (Arabic, plus English spellings) -> code
SAUDI_CITY_CODES: dict[str, str] = {
    "الرياض": "RYD",
    "جدة": "JED",
    "الدمام": "DAM",
    "مكة": "MKA",
    "مكة المكرمة": "MKA",
    "المدينة": "MDN",
    "المدينة المنورة": "MDN",
    "تبوك": "TBK",
    "أبها": "ABH",
    "الطائف": "TAF",
    "الجبيل": "JUB",
    "ينبع": "YAN",
    "الخبر": "KHO",
    "القطيف": "QAT",
    "الأحساء": "AHS",
    "خميس مشيط": "KHM",
    "بريدة": "BUR",
    "حائل": "HAI",
    "الظهران": "DHA",
    "عرعر": "ARA",
    "سكاكا": "SAK",
    "جازان": "JAZ",
    "جيزان": "JAZ",
    "نجران": "NAJ",
    "الباحة": "BAH",
    "القريات": "QUR",
    "riyadh": "RYD",
    "jeddah": "JED",
    "dammam": "DAM",
    "makkah": "MKA",
    "mecca": "MKA",
    "madinah": "MDN",
    "medina": "MDN",
    "tabuk": "TBK",
    "abha": "ABH",
    "taif": "TAF",
    "jubail": "JUB",
    "yanbu": "YAN",
    "khobar": "KHO",
    "qatif": "QAT",
    "al ahsa": "AHS",
    "khamis mushait": "KHM",
    "buraidah": "BUR",
    "hail": "HAI",
    "dhahran": "DHA",
    "arar": "ARA",
    "sakaka": "SAK",
    "jazan": "JAZ",
    "najran": "NAJ",
    "al baha": "BAH",
    "qurayyat": "QUR",
}

VISIT_ID_PATTERN = re.compile(r"^VISIT-(\d{4})-(\d{4,})$")
EMERGENCY_TICKET_PATTERN = re.compile(r"^EMG-[A-Z]{3}-\d{8}$")
_COMPANY_ID_PATTERN = re.compile(r"^\d{4}$")


def city_code(city: Optional[str]) -> Optional[str]:
    """Three letter code for a branch city, None when the city is unknown."""
    if not city:
        return None
    name = city.strip()
    if re.fullmatch(r"[A-Z]{3}", name) and name in SAUDI_CITY_CODES.values():
        return name
    return SAUDI_CITY_CODES.get(name) or SAUDI_CITY_CODES.get(name.lower())


def generate_emergency_ticket_number(code: str) -> str:
    """EMG-<city>-<8 random digits>; caller resolves the city code first."""
    digits = "".join(secrets.choice(string.digits) for _ in range(8))
    return f"EMG-{code}-{digits}"


def next_visit_id(existing_ids: Iterable[Optional[str]], year: int) -> str:
    """Next VISIT-<year>-<seq>, one past the highest sequence used this year."""
    highest = 0
    for visit_id in existing_ids:
        match = VISIT_ID_PATTERN.match(visit_id or "")
        if match and int(match.group(1)) == year:
            highest = max(highest, int(match.group(2)))
    return f"VISIT-{year}-{highest + 1:04d}"


def next_company_id(existing_ids: Iterable[Optional[str]]) -> str:
    numbers = [int(value) for value in existing_ids if value and _COMPANY_ID_PATTERN.match(value)]
    return f"{max(numbers, default=0) + 1:04d}"


def next_contract_id(company_id: str, existing_ids: Iterable[Optional[str]]) -> str:
    prefix = f"{company_id}-"
    sequences = []
    for contract_id in existing_ids:
        if contract_id and contract_id.startswith(prefix):
            tail = contract_id[len(prefix):]
            if tail.isdigit():
                sequences.append(int(tail))
    return f"{company_id}-{max(sequences, default=0) + 1:03d}"


def next_branch_id(
    company_id: str,
    code: str,
    location_number: int,
    existing_ids: Iterable[Optional[str]],
) -> str:
    prefix = f"{company_id}-{code}-{location_number:03d}-"
    taken = sum(1 for branch_id in existing_ids if branch_id and branch_id.startswith(prefix))
    return f"{prefix}{taken + 1:04d}"


def generate_addendum_id() -> str:
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"ADD-{int(time.time() * 1000)}-{suffix}"


def generate_batch_id() -> str:
    return f"BATCH-{secrets.token_hex(4).upper()}"
