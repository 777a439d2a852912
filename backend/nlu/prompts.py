"""Prompt for LLM entity extraction.

The model only EXTRACTS what the customer said. Catalog matching happens
afterwards in the reconciler, so the prompt never lists catalog contents.
"""
from typing import Optional

EXTRACTION_PROMPT = """You extract print-order details from a customer's WhatsApp message.
The business sells custom printed packaging (pouches, bags, boxes, labels).

Return ONLY one JSON object with exactly these keys:
{{
  "category": string or null,        // e.g. "mylar bag", "labels"
  "product_type": string or null,    // e.g. "stand up pouch", "flat pouch"
  "dimensions": string or null,      // sizes as typed, e.g. "4x6x2"
  "materials": [string],             // e.g. ["PET", "kraft"]
  "finishes": [string],              // e.g. ["matte", "spot UV", "foil"]
  "quantities": [string],            // e.g. ["5000", "10k"]
  "intent": "greeting" | "quote_request" | "affirm" | "deny" | "reset" | null,
  "confidence_score": number between 0 and 1
}}

Rules:
- Copy names the way the customer wrote them; do not invent products.
- "5k" means 5000. Several quantities are allowed.
- Numbers that are part of a size ("4x6x2") are NOT quantities.
- Use null or [] for anything not mentioned.
{context}
Customer message:
\"\"\"{message}\"\"\"
"""


def build_extraction_prompt(message: str, current_step: Optional[str] = None) -> str:
    context = ""
    if current_step:
        context = f"- The conversation is currently at step: {current_step}.\n"
    return EXTRACTION_PROMPT.format(message=message.replace('"""', "'''"), context=context)
