# ── Prompt contracts for the spreadsheet assistant ──────────────────
# Formula suggestion
#   Input:  target cell, column headers from row 1, user request
#   Output: a single formula starting with '=' (no prose, no markdown)
# Data analysis
#   Input:  CSV snapshot of computed values (header row = column letters)
#   Output: JSON object {"summary": str, "insights": [str, ...]}

FORMULA_SYSTEM_PROMPT = (
    "You are an Excel expert helping with a small spreadsheet.\n"
    "Supported syntax: numbers, + - * /, parentheses, cell references like A1, "
    "SUM(A1:A5) and AVERAGE(A1:A5) over a single column.\n"
    "Return ONLY the formula starting with '='.\n"
    "Example Output: =SUM(A1:A5)\n"
    "Do not return markdown or explanation."
)

FORMULA_USER_PROMPT = (
    "The user wants a formula for cell {target_cell}.\n\n"
    "Context (Column Headers):\n"
    "{headers}\n\n"
    'User Request: "{description}"'
)

ANALYSIS_SYSTEM_PROMPT = (
    "You are a data analyst. Analyze CSV data exported from a spreadsheet.\n"
    "Provide a brief summary of what this data represents and 3 key insights or trends.\n"
    'Return the response in JSON format with keys: "summary" (string) and "insights" (array of strings).\n'
    "Do not include markdown code blocks. Just the raw JSON."
)

ANALYSIS_USER_PROMPT = "CSV Data:\n{csv_data}"

ANALYSIS_FALLBACK_SUMMARY = "Could not analyze data at this time. Please check your API key."
ANALYSIS_FALLBACK_INSIGHTS = ["Ensure your data is numeric and structured correctly."]

# Cells of row 1 shown to the formula assistant
HEADER_CONTEXT_COLS = 10

# Rectangle sent to the analyst
ANALYSIS_ROWS = 20
ANALYSIS_COLS = 10


def build_formula_prompt(description: str, target_cell: str, headers: list[str]) -> str:
    return FORMULA_USER_PROMPT.format(
        target_cell=target_cell,
        headers=", ".join(headers),
        description=description.strip(),
    )


def build_analysis_prompt(csv_data: str) -> str:
    return ANALYSIS_USER_PROMPT.format(csv_data=csv_data)
