"""
gov-json: Governance layer for JSON embedded in model output.

Sits between a language model's raw text and its consumer. It:
1. Extracts JSON from mixed prose and classifies the user's intent
2. Sanitizes and validates it against hard rules, masking leaked credentials
3. Re-prompts the model in a bounded loop to repair what it cannot fix
"""

__version__ = "0.1.0"
