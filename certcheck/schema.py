from typing import Any, Dict, List

# Canonical section keys, in report order, with the item keys each one expects.
SECTION_FIELDS: Dict[str, Dict[str, Any]] = {
    "common_expenses": {
        "title": "Common Expenses",
        "keys": ["monthly_amount", "unit_arrears", "prepaid_expenses", "pending_increases"],
    },
    "reserve_fund": {
        "title": "Reserve Fund",
        "keys": [
            "reserve_fund_balance", "reserve_per_unit", "study_date", "study_preparer",
            "next_study_date", "annual_contribution", "adequacy_statement",
        ],
    },
    "special_assessments": {
        "title": "Special Assessments",
        "keys": ["current_assessments", "planned_assessments"],
    },
    "legal_proceedings": {
        "title": "Legal Proceedings",
        "keys": [
            "outstanding_judgments", "current_litigation",
            "administrator_appointed", "warranty_claims",
        ],
    },
    "insurance": {
        "title": "Insurance",
        "keys": [
            "building_coverage", "standard_deductible", "water_deductible",
            "flood_deductible", "liability_coverage", "directors_officers_coverage",
        ],
    },
    "management": {
        "title": "Management & Governance",
        "keys": [
            "property_manager", "manager_contact", "board_directors",
            "total_units", "fiscal_year_end",
        ],
    },
    "rules": {
        "title": "Rules & Restrictions",
        "keys": ["units_leased", "pet_policy", "rental_restrictions", "planned_changes"],
    },
    "building_notes": {
        "title": "Building-Specific Notes",
        "keys": [],
    },
}

CANONICAL_SECTION_KEYS: List[str] = list(SECTION_FIELDS)

# Alternate spellings models emit for canonical sections.
SECTION_KEY_MAP: Dict[str, str] = {
    "commonExpenses": "common_expenses",
    "reserveFund": "reserve_fund",
    "specialAssessments": "special_assessments",
    "legalProceedings": "legal_proceedings",
    "rulesRestrictions": "rules",
    "rules_restrictions": "rules",
    "buildingNotes": "building_notes",
}

ITEM_STATUSES = ("ok", "warning", "error", "missing")
CONFIDENCE_LEVELS = ("high", "medium", "low")
ISSUE_SEVERITIES = ("high", "warning", "low")
RISK_RATINGS = ("GREEN", "YELLOW", "RED")

ITEM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "key": {"type": "string"},
        "label": {"type": "string"},
        "value": {"type": "string"},
        "status": {"enum": list(ITEM_STATUSES)},
        "confidence": {"enum": list(CONFIDENCE_LEVELS)},
        "quote": {"type": ["string", "null"]},
        "reason": {"type": "string"},
    },
    "required": ["id", "label", "value", "status", "confidence", "quote", "reason"],
}

STATUS_CERTIFICATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "corporation": {"type": "string"},
        "unit": {"type": "string"},
        "parking": {"type": "string"},
        "locker": {"type": "string"},
        "address": {"type": "string"},
        "owner": {"type": "string"},
        "common_interest": {"type": "string"},
        "certificate_date": {"type": "string", "format": "YYYY-MM-DD"},
        "expiry_date": {"type": "string", "format": "YYYY-MM-DD"},
        "sections": {
            "type": "object",
            "properties": {
                key: {
                    "type": "object",
                    "properties": {
                        "title": {"const": section["title"]},
                        "items": {"type": "array", "items": ITEM_SCHEMA},
                    },
                    "expected_item_keys": section["keys"],
                }
                for key, section in SECTION_FIELDS.items()
            },
            "required": CANONICAL_SECTION_KEYS,
        },
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "severity": {"enum": list(ISSUE_SEVERITIES)},
                    "title": {"type": "string"},
                    "finding": {"type": "string"},
                    "regulation": {"type": "string"},
                    "recommendation": {"type": "string"},
                    "quote": {"type": "string"},
                },
            },
        },
        "risk_rating": {"enum": list(RISK_RATINGS)},
    },
    "required": ["corporation", "address", "certificate_date", "sections", "issues", "risk_rating"],
}

EXTRACTION_INSTRUCTIONS = """
You are analyzing an Ontario condominium status certificate and its attachments.

RULES:
- Only return valid JSON matching the provided schema.
- Use the exact section keys and item keys listed in the schema.
- Every item carries status (ok|warning|error|missing) and confidence (high|medium|low).
- Quote the exact supporting text from the document in `quote`; use null only for calculated values.
- If information is not found, set status to "missing" and value to "NOT FOUND".
- Never invent data. Explain the confidence in `reason`.
- Monetary values keep the dollar sign and the exact amount shown.
- Dates use YYYY-MM-DD. The certificate expires 60 days after its date.

Thresholds:
- Reserve fund study older than 2.5 years at the certificate date: warning (O. Reg. 48/01 requires an update every 3 years).
- Water damage or flood deductible above $25,000: warning.
- Reserve fund per unit below $3,000: warning; below $1,000: error.
- Operating deficit, or building arrears above 5% of budget: warning.
- Any judgment, appointed administrator, litigation above $50,000, or special assessment above $5,000 per unit: error, high-severity issue.
- Any litigation, planned assessment, or aged reserve study: warning issue.
- Building notes: Kitec plumbing, aluminum wiring, UFFI insulation, balcony or garage repairs, elevator modernization.

Risk rating:
- GREEN: no warnings or errors, key information present, healthy financials.
- YELLOW: 1-3 warnings and no errors.
- RED: any error, 4 or more warnings, or critical missing information.
"""

SYSTEM_INSTRUCTION = (
    "You are a legal document analyzer. Always respond with valid JSON only - "
    "no markdown, no code blocks, no explanations. "
    "Output raw JSON starting with { and ending with }."
)
