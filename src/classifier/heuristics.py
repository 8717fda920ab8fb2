"""Deterministic keyword classifiers used before and instead of the AI.

These never call out and never raise, so they serve as the fallback tier
when a classifier call fails or returns something unusable.
"""

import re

from src.classifier.outcome import Verdict

CATEGORY_SLUGS: tuple[str, ...] = (
    "engineering", "design", "data", "devops", "qa", "security",
    "product", "marketing", "sales", "finance", "hr", "operations",
    "legal", "project-management", "writing", "translation", "creative",
    "support", "education", "research", "consulting",
)

# Professions the board never lists. Checked before any AI call.
BLOCKED_TITLE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "healthcare": (
        "nurse", "nursing", "lpn", "caregiver", "physician", "surgeon", "dentist",
        "therapist", "pharmacist", "veterinarian", "medical assistant", "patient care",
        "hospice", "home health", "phlebotomist", "paramedic",
    ),
    "construction": (
        "construction", "foreman", "electrician", "plumber", "hvac", "welder",
        "carpenter", "roofer", "drywall", "crane operator",
    ),
    "manufacturing": (
        "production worker", "assembler", "machine operator", "cnc operator",
        "line worker", "factory", "machinist", "fabricator",
    ),
    "retail_hospitality": (
        "retail", "cashier", "store clerk", "sales associate", "store manager",
        "cook", "chef", "barista", "bartender", "waiter", "waitress", "hostess",
        "dishwasher", "hotel", "front desk", "concierge", "housekeeper",
    ),
    "logistics": (
        "driver", "cdl", "courier", "warehouse", "forklift", "picker", "packer",
    ),
    "field": (
        "field technician", "field service", "installation technician",
        "service technician",
    ),
    "cleaning_security": (
        "security guard", "security officer", "janitor", "custodian", "cleaner",
        "handyman",
    ),
    "office_traditional": (
        "receptionist", "file clerk", "records clerk", "office assistant",
    ),
    "education_traditional": (
        "substitute teacher", "teacher aide", "paraprofessional", "classroom",
    ),
    "automotive": ("mechanic", "automotive technician", "body shop", "tire technician"),
    "physical_engineering": (
        "mechanical engineer", "electrical engineer", "civil engineer",
        "structural engineer", "chemical engineer", "manufacturing engineer",
    ),
    "accounting": ("accountant", "bookkeeper", "bookkeeping", "auditor", "payroll clerk"),
    "property": (
        "property manager", "leasing agent", "leasing consultant", "real estate agent",
        "realtor",
    ),
    "social_work": ("social worker", "case manager", "youth worker", "behavioral health"),
}

# Cheap pre-filter for titles the relevance prompt would always reject.
NON_ENGLISH_TITLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(funcional|desenvolvedor|gerente|coordenador|engenheiro)\b", re.IGNORECASE),
    re.compile(r"\b(ingeniero|coordinador|desarrollador|especialista)\b", re.IGNORECASE),
    re.compile(r"\b(ingénieur|analyste|développeur|gestionnaire|conseiller)\b", re.IGNORECASE),
    re.compile(r"\b(entwickler|sachbearbeiter|leiter|koordinator|berater)\b", re.IGNORECASE),
)

# Ordered: the first matching rule wins.
_CATEGORY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("research", ("research",)),
    ("data", ("analyst", "data", "bi ")),
    ("product", ("product manager", "product owner")),
    ("qa", ("qa", "quality", "test", "sdet", "review")),
    ("support", ("support", "customer success")),
    ("marketing", ("marketing", "growth")),
    ("sales", ("sales", "account executive", "business development")),
    ("design", ("design", "ux ", "ui ")),
    ("writing", ("writer", "content", "copy")),
    ("translation", ("translat", "locali", "interpreter")),
    ("project-management", ("project manager", "scrum", "program manager")),
    ("hr", ("recruit", "people", "talent", "hr ")),
    ("finance", ("finance", "financial", "payroll")),
    ("legal", ("legal", "compliance", "counsel")),
    ("security", ("security", "infosec", "cyber")),
    ("devops", ("devops", "sre", "site reliability", "infrastructure", "cloud")),
    ("operations", ("operations", "admin")),
    ("engineering", ("engineer", "develop", "program")),
)

_LEVEL_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("INTERN", ("intern", "internship")),
    ("ENTRY", ("entry", "graduate", "new grad")),
    ("JUNIOR", ("junior", "jr")),
    ("SENIOR", ("senior", "sr")),
    ("LEAD", ("staff", "principal", "lead")),
    ("DIRECTOR", ("director",)),
    ("EXECUTIVE", ("vp", "vice president", "head of", "chief")),
)

_COUNTRY_CODES: dict[str, str] = {
    "united states": "US", "usa": "US", "america": "US",
    "united kingdom": "GB", "uk": "GB", "england": "GB", "britain": "GB",
    "canada": "CA", "germany": "DE", "france": "FR", "netherlands": "NL",
    "spain": "ES", "italy": "IT", "australia": "AU", "india": "IN",
    "brazil": "BR", "mexico": "MX", "poland": "PL", "portugal": "PT",
    "ireland": "IE", "sweden": "SE", "switzerland": "CH", "singapore": "SG",
    "japan": "JP", "israel": "IL",
}

_SKILLS: tuple[str, ...] = (
    "JavaScript", "TypeScript", "Python", "Java", "Golang", "Rust", "C++", "C#",
    "React", "Angular", "Vue", "Node.js", "Next.js", "Django", "Rails", "Spring",
    "AWS", "GCP", "Azure", "Kubernetes", "Docker", "Terraform",
    "PostgreSQL", "MySQL", "MongoDB", "Redis", "Elasticsearch",
    "GraphQL", "REST API", "Microservices", "Machine Learning", "TensorFlow",
    "PyTorch", "Figma", "Agile", "Scrum", "CI/CD", "Git",
)
_SHORT_SKILLS: tuple[str, ...] = ("Go", "AI", "API", "ML", "NLP")
_MAX_SKILLS = 10


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(phrase.strip())}(?![a-z0-9])", text) is not None


def _starts_word(text: str, prefix: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(prefix)}", text) is not None


def blocked_title_group(title: str) -> str | None:
    """Return the blacklist group a title falls into, or None."""
    t = title.lower()
    for group, keywords in BLOCKED_TITLE_KEYWORDS.items():
        if any(_contains_phrase(t, kw) for kw in keywords):
            return group
    return None


def is_non_english_title(title: str) -> bool:
    return any(p.search(title) for p in NON_ENGLISH_TITLE_PATTERNS)


def local_relevance(title: str) -> Verdict:
    """Keyword-only relevance: irrelevant if blacklisted or non-English."""
    if blocked_title_group(title) is not None or is_non_english_title(title):
        return Verdict.IRRELEVANT
    return Verdict.RELEVANT


def local_category(title: str) -> str:
    """Map a title to a category slug by keyword. Never fails."""
    t = f"{title.lower()} "
    for slug, keywords in _CATEGORY_RULES:
        if any(_starts_word(t, kw) for kw in keywords):
            return slug
    return "support"


def extract_level(title: str) -> str:
    t = f"{title.lower()} "
    for level, keywords in _LEVEL_RULES:
        if any(_contains_phrase(t, kw) for kw in keywords):
            return level
    if "manager" in t and "product manager" not in t:
        return "MANAGER"
    return "MID"


def extract_country_code(location: str) -> str | None:
    loc = location.lower()
    for name, code in _COUNTRY_CODES.items():
        if _contains_phrase(loc, name):
            return code
    return None


def slugify(*parts: str) -> str:
    """Lowercase, hyphen-separated, ASCII-only slug built from ``parts``."""
    text = " ".join(p for p in parts if p).lower()
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    return text[:80].rstrip("-") or "job"


def extract_skills(description: str) -> list[str]:
    """Pick known skill names out of a description, at most ten."""
    lower = description.lower()
    found = [s for s in _SKILLS if s.lower() in lower]
    found += [s for s in _SHORT_SKILLS if re.search(rf"\b{s}\b", description)]
    return list(dict.fromkeys(found))[:_MAX_SKILLS]
