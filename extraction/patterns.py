"""
Centralized patterns and lookups for the field extractor.

- Label lexicons: what counts as a "date", "(check) amount" or "description" label.
- WEIGHT_UNIT_MARKERS: lb/lbs/pounds plus the ways scanners mangle them.
- SELLER_MARKERS / BOILERPLATE_LINES: dealer-line heuristics.
- NOISE_MARKERS: lines that carry phone/account/routing numbers, not trip data.
- DEALER_PROFILES: per-dealer quirks layered over DEFAULT_PROFILE.
- Numeric limits used to reject implausible values.

Extraction code reads these tables; when a new slip layout shows up, I add a
label or a profile here instead of branching in `extract.py`.
"""

# Money with an explicit decimal point: "152.25", "1,204.50", "59,50".
# Bare digit runs are never treated as cents.
MONEY_DECIMAL_REGEX = r"(?<![\d/.,])(\d{1,3}(?:,\d{3})+\.\d{2}|\d{1,6}[.,]\d{2})(?![\d/])"

# Currency-marked values; the cents part is optional here because the symbol
# already says "this is money".
CURRENCY_REGEX = r"(?:\$|\bUSD\b)\s*(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d{1,6}(?:[.,]\d{2})?)(?![\d/])"

# Dates: M/D/YYYY, M/D/YY (separators / - .) and the glued MMDDYY / MMDD-YY
# form some check printers use.
DATE_FULL_REGEX = r"(?<![\d/.\-])(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?![\d/\-]|\.\d)"
DATE_SHORT_REGEX = r"(?<![\d/.\-])(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})(?![\d/\-]|\.\d)"
DATE_GLUED_REGEX = r"(?<![\d/.\-])(0[1-9]|1[0-2])([0-2]\d|3[01])-?(\d{2})(?![\d/\-]|\.\d)"

DATE_LABELS = ["DATE", "DATED", "HARVEST DATE", "CHECK DATE", "SALE DATE"]

AMOUNT_LABELS = ["CHECK AMOUNT", "CHECK AMT", "AMOUNT PAID", "NET AMOUNT", "AMOUNT", "AMT"]

DESCRIPTION_LABELS = ["DESCRIPTION", "DESC"]

# Weight markers, longest first so "pounds" wins over "pound".
# OCR variants: "IBS" (capital i), "1BS" (one), "|BS" (pipe).
WEIGHT_UNIT_MARKERS = ["pounds", "pound", "lbs", "lb", "ibs", "1bs", "|bs"]

SELLER_MARKERS = [
    "INC", "INCORPORATED", "LLC", "CO", "COMPANY", "CORP", "CORPORATION",
    "SEAFOOD", "SEAFOODS", "FISHERIES", "SHELLFISH", "LOBSTER", "CLAM", "WHOLESALE",
]

# Lines containing these carry identifiers, not quantities.
NOISE_MARKERS = ["TEL", "PHONE", "FAX", "ACCOUNT", "ACCT", "ROUTING", "PO BOX", "P O BOX", "CHECK NO", "CHECK #"]

# Lines that are form text, never a dealer name.
BOILERPLATE_LINES = [
    "PAY TO THE ORDER OF", "ORDER OF", "PAY", "VOID", "MEMO", "DOLLARS",
    "CHECK", "AMOUNT", "DATE", "DESCRIPTION", "SIGNATURE", "AUTHORIZED",
    "NOT NEGOTIABLE", "NON NEGOTIABLE", "STUB", "RECEIPT", "INVOICE",
    "TOTAL", "SUBTOTAL", "BALANCE", "THANK YOU",
]

# Plausibility windows.
AMOUNT_RANGE = (1.0, 500_000.0)
POUNDS_RANGE = (1.0, 500.0)

LABEL_WINDOW_TOKENS = 8
# text after a label is cut to this many characters before tokenizing
LABEL_WINDOW_CHARS = 256
DESCRIPTION_BLOCK_LINES = 12
DEALER_SCAN_LINES = 12
DEALER_MAX_LEN = 60
MAX_INPUT_CHARS = 200_000

DEFAULT_PROFILE = {
    "name": "default",
    "dealer_name": None,
    "amount_labels": AMOUNT_LABELS,
    "description_labels": DESCRIPTION_LABELS,
    "weight_markers": WEIGHT_UNIT_MARKERS,
    # when False, amount comes from the labelled window or stays absent
    "amount_fallback": True,
}

# Keyed by a trigger string searched in the upper-cased text.
DEALER_PROFILES = {
    "MACHIAS BAY SEAFOOD": {
        "name": "machias",
        "dealer_name": "Machias Bay Seafood",
        # their stubs print MICR and account numbers that look like money
        "amount_labels": ["CHECK AMOUNT", "CHECK AMT"],
        "amount_fallback": False,
    },
}
