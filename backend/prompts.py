# backend/prompts.py

from .config import FieldSchema

_COUNTER_PROMPT = """You are the image analysis AI of a factory production-line monitoring system.
Analyze this image and answer ONLY with the JSON below. Do not include any other text.

Rules:
1. Decide whether the image shows a production counter, digital display or status board.
2. If it does, read:
   - boxCount: number of boxes shown on the counter (number, null if absent)
   - bottleCount: number of bottles shown on the counter (number, null if absent)
3. If it does not, describe what the image shows instead.

JSON format:
{
  "isRelevant": true or false,
  "boxCount": number or null,
  "bottleCount": number or null,
  "summary": "short description (detailed if not relevant)"
}

Example (counter display):
{"isRelevant": true, "boxCount": 45, "bottleCount": 4523, "summary": "Line counter display"}

Example (unrelated image):
{"isRelevant": false, "boxCount": null, "bottleCount": null, "summary": "An office desk with a computer and a chair."}

Answer with JSON only:"""

_PRODUCTION_PROMPT = """You are the image analysis AI of a factory production-line monitoring system.
Analyze this image and answer ONLY with the JSON below. Do not include any other text.

Rules:
1. Decide whether the image shows a production status board, digital display or production information.
2. If it does, extract:
   - operatingLine: operating line (e.g. "Line 1", "A line"; choose the circled one among A, B, C; null if absent)
   - productionDate: production date (YYYY-MM-DD, null if absent; never more than a year from today)
   - plannedQuantity: planned quantity (number, null if absent)
   - productName: product name (null if absent)
   - completedQuantity: completed quantity (number, null if absent)
   - lotNo: LOT NO / lot number (null if absent)
3. If it does not, describe what the image shows instead.

JSON format:
{
  "isRelevant": true or false,
  "operatingLine": "line" or null,
  "productionDate": "YYYY-MM-DD" or null,
  "plannedQuantity": number or null,
  "productName": "product" or null,
  "completedQuantity": number or null,
  "lotNo": "lot number" or null,
  "summary": "short description (detailed if not relevant)"
}

Example (status board):
{"isRelevant": true, "operatingLine": "Line 1", "productionDate": "2025-11-28", "plannedQuantity": 5000,
 "productName": "Water 500ml", "completedQuantity": 3450, "lotNo": "LOT-20251128-001", "summary": "Production status board"}

Example (unrelated image):
{"isRelevant": false, "operatingLine": null, "productionDate": null, "plannedQuantity": null,
 "productName": null, "completedQuantity": null, "lotNo": null,
 "summary": "An office desk with a computer and a chair."}

Answer with JSON only:"""

NUMBER_PROMPT = (
    "Read the production counter in this image and reply with the counter value only, "
    "as digits. If no counter value is visible, reply with NONE."
)

_PROMPTS = {
    "counter": _COUNTER_PROMPT,
    "production": _PRODUCTION_PROMPT,
}


def structured_prompt(schema: FieldSchema) -> str:
    return _PROMPTS[schema.name]
