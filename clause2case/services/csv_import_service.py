"""
Clause2Case
Manual Test Case CSV Import.

Features:
  - Quote- and newline-aware CSV tokenizer (RFC 4180 quoting)
  - Required columns: title, description
  - Optional: category, priority, preconditions, steps, expected_result
  - Per-row soft errors; header problems abort the import
  - Industry-specific template generation
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field

from clause2case.core.exceptions import CSVImportError, CSVImportErrorKind, ValidationError
from clause2case.models.testing import TEST_CASE_PRIORITIES
from clause2case.services.storage import SQLAlchemyStorage

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("title", "description")
DEFAULT_CATEGORY = "Manual"
DEFAULT_PRIORITY = "medium"

_STEP_NUMBERING = re.compile(r"^(?:\d+[.)]|[-*•])\s*")


@dataclass
class ImportResult:
    created: int = 0
    errors: list[str] = field(default_factory=list)
    test_cases: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "errors": list(self.errors),
            "testCases": [tc.to_dict() for tc in self.test_cases],
        }


# ═══════════════════════════════════════════════════════════════
# CSV Template
# ═══════════════════════════════════════════════════════════════

CSV_TEMPLATE_HEADER = [
    "title", "description", "category", "priority",
    "preconditions", "steps", "expected_result", "source",
]

CSV_TEMPLATE_EXAMPLES = {
    "General": [
        ["User login with valid credentials",
         "Verify a registered user can sign in",
         "Authentication", "high",
         "User account exists and is active",
         "1. Open the login page\n2. Enter a valid email\n3. Enter the matching password\n"
         "4. Click Sign In\n5. Observe the landing page",
         "User is redirected to the dashboard", "manual"],
        ["Password reset email",
         "Verify the reset link is sent to the registered address",
         "Authentication", "medium",
         "User account exists",
         "1. Open the login page\n2. Click Forgot password\n3. Enter the registered email\n"
         "4. Submit the form\n5. Open the mailbox",
         "A reset email with a single-use link arrives", "manual"],
    ],
    "Finance": [
        ["Wire transfer above approval limit",
         "Transfers above 10,000 require a second approver",
         "Compliance", "high",
         "Maker and checker accounts exist",
         "1. Log in as maker\n2. Create a wire transfer of 15,000\n3. Submit for processing\n"
         "4. Log in as checker\n5. Open the pending approvals queue",
         "Transfer is held until the checker approves it", "manual"],
        ["Statement balance reconciliation",
         "Closing balance equals opening balance plus posted transactions",
         "Functional", "medium",
         "Account has posted transactions in the period",
         "1. Open the account\n2. Select the statement period\n3. Export the statement\n"
         "4. Sum the posted transactions\n5. Compare with the closing balance",
         "Balances reconcile to the cent", "manual"],
    ],
    "Healthcare": [
        ["Patient record access audit",
         "Every view of a patient record is written to the audit log",
         "Compliance", "high",
         "Clinician account with access to the patient",
         "1. Log in as clinician\n2. Search for the patient\n3. Open the patient record\n"
         "4. Log in as compliance officer\n5. Open the audit log",
         "Audit log shows the clinician, patient and timestamp", "manual"],
        ["Appointment double booking",
         "A provider cannot be booked twice for the same slot",
         "Edge Case", "medium",
         "Provider has one booked slot",
         "1. Open the scheduling screen\n2. Select the provider\n3. Pick the booked slot\n"
         "4. Enter patient details\n5. Submit the booking",
         "Booking is rejected with a conflict message", "manual"],
    ],
    "Ecommerce": [
        ["Checkout with out-of-stock item",
         "Items that sell out during checkout are removed from the order",
         "Edge Case", "high",
         "Cart contains an item with one unit left",
         "1. Add the item to the cart\n2. Start checkout\n3. Buy the last unit from another session\n"
         "4. Continue checkout\n5. Place the order",
         "Customer is told the item is unavailable and is not charged for it", "manual"],
        ["Discount code applied once",
         "A single-use discount code cannot be reused",
         "Functional", "medium",
         "Customer has already used the code",
         "1. Add an item to the cart\n2. Open the cart\n3. Enter the used discount code\n"
         "4. Apply the code\n5. Review the order total",
         "Code is rejected and the total is unchanged", "manual"],
    ],
    "Manufacturing": [
        ["Batch quality hold",
         "Batches failing inspection are blocked from shipping",
         "Compliance", "high",
         "Production batch awaiting inspection",
         "1. Open the batch record\n2. Record a failed inspection result\n3. Save the inspection\n"
         "4. Open the shipping screen\n5. Try to allocate the batch to an order",
         "Batch cannot be allocated while on quality hold", "manual"],
        ["Reorder point trigger",
         "A purchase requisition is raised when stock falls below the reorder point",
         "Integration", "medium",
         "Material has a reorder point of 100 units",
         "1. Check current stock is 120\n2. Post a goods issue of 30 units\n3. Run the MRP job\n"
         "4. Open purchase requisitions\n5. Filter by the material",
         "A requisition for the material exists", "manual"],
    ],
}

INDUSTRIES = tuple(CSV_TEMPLATE_EXAMPLES)


def generate_csv_template(industry: str = "General") -> str:
    """Generate a CSV template string for manual test case import."""
    key = next((k for k in CSV_TEMPLATE_EXAMPLES if k.lower() == (industry or "").lower()), "General")
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_TEMPLATE_HEADER)
    writer.writerows(CSV_TEMPLATE_EXAMPLES[key])
    return output.getvalue()


# ═══════════════════════════════════════════════════════════════
# CSV Tokenizing
# ═══════════════════════════════════════════════════════════════

def tokenize_csv(text: str) -> list[list[str]]:
    """
    Split CSV text into rows of fields.

    A double quote toggles quoting and ``""`` inside quotes is a literal
    quote. Commas and newlines (LF or CRLF) inside quotes belong to the
    field. Blank lines outside quotes are skipped.
    """
    rows: list[list[str]] = []
    row: list[str] = []
    current = []
    in_quotes = False
    row_has_content = False

    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    current.append('"')
                    i += 2
                    continue
                in_quotes = False
            else:
                current.append(ch)
            i += 1
            continue

        if ch == '"':
            in_quotes = True
            row_has_content = True
        elif ch == ",":
            row.append("".join(current))
            current = []
            row_has_content = True
        elif ch in "\r\n":
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            if row_has_content:
                row.append("".join(current))
                rows.append(row)
            row, current, row_has_content = [], [], False
        else:
            current.append(ch)
            row_has_content = True
        i += 1

    if row_has_content:
        row.append("".join(current))
        rows.append(row)
    return rows


# ═══════════════════════════════════════════════════════════════
# Import
# ═══════════════════════════════════════════════════════════════

def parse_steps(raw: str) -> list[str]:
    """One step per line, blank lines dropped, ``1.`` / ``-`` numbering stripped."""
    steps = []
    for line in (raw or "").splitlines():
        line = _STEP_NUMBERING.sub("", line.strip()).strip()
        if line:
            steps.append(line)
    return steps


def _decode(data: str | bytes) -> str:
    if isinstance(data, bytes):
        try:
            return data.decode("utf-8-sig")  # Handle BOM
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV file must be UTF-8 encoded") from exc
    return data.lstrip("\ufeff")


def import_csv(data: str | bytes, document_id: str | None = None, *, storage=None) -> ImportResult:
    """
    Import manual test cases from CSV content.

    Row numbers in error messages count the header as row 1.

    Raises:
        CSVImportError: empty input or missing required columns.
        PersistenceError: a row could not be saved; the import stops.
    """
    storage = storage or SQLAlchemyStorage()
    rows = tokenize_csv(_decode(data))
    if not rows:
        raise CSVImportError(CSVImportErrorKind.EMPTY_FILE, "CSV file is empty")

    headers = [h.strip().lower() for h in rows[0]]
    missing = [c for c in REQUIRED_COLUMNS if c not in headers]
    if missing:
        raise CSVImportError(
            CSVImportErrorKind.MISSING_COLUMN,
            "CSV must have 'title' and 'description' columns. "
            f"Found columns: {', '.join(rows[0])}",
        )

    result = ImportResult()
    for row_num, row in enumerate(rows[1:], start=2):  # header is row 1
        values = {h: (row[i].strip() if i < len(row) else "") for i, h in enumerate(headers)}
        if not any(values.values()):
            continue
        if not values.get("title") or not values.get("description"):
            message = f"Row {row_num}: Missing title or description"
            logger.warning("CSV import: %s", message, extra={"document_id": document_id})
            result.errors.append(message)
            continue

        priority = values.get("priority", "").lower()
        if priority not in TEST_CASE_PRIORITIES:
            priority = DEFAULT_PRIORITY

        tc = storage.create_test_case({
            "document_id": document_id,
            "title": values["title"],
            "description": values["description"],
            "category": values.get("category") or DEFAULT_CATEGORY,
            "priority": priority,
            "preconditions": values.get("preconditions", ""),
            "steps": parse_steps(values.get("steps", "")),
            "expected_result": values.get("expected_result", ""),
            "tags": [],
            "source": "manual",
        })
        result.test_cases.append(tc)
        result.created += 1

    logger.info("CSV import created %d test case(s) with %d row error(s)",
                result.created, len(result.errors), extra={"document_id": document_id})
    return result
