"""
Gemini Model Listing Script

Lists the generation models the configured GEMINI_API_KEY can use. Run it
when the service logs a "model not found" error.
Run from project root: python scripts/list_models.py

Author: Khalil Bannouri
Version: 4.0.0
"""

import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from google import genai
from google.genai import errors

from app.core.config import get_settings


def list_models(show_all: bool = False) -> int:
    """
    Print the models available to the key.

    Args:
        show_all: Also list models that cannot generate content

    Returns:
        int: Process exit code
    """
    settings = get_settings()

    if not settings.gemini_api_key:
        print("❌ GEMINI_API_KEY is not set. Add it to your .env file.")
        return 1

    client = genai.Client(api_key=settings.gemini_api_key.strip())

    print("=" * 60)
    print("🔎 GEMINI MODELS AVAILABLE TO THIS KEY")
    print("=" * 60)

    count = 0
    try:
        for model in client.models.list():
            actions = model.supported_actions or []
            if not show_all and "generateContent" not in actions:
                continue

            name = (model.name or "").replace("models/", "")
            marker = "✅" if name == settings.gemini_model else "  "
            print(f"{marker} {name}")
            count += 1
    except errors.APIError as e:
        print(f"❌ Gemini error {e.code}: {e.message}")
        return 1

    print("=" * 60)
    print(f"{count} model(s). Configured: {settings.gemini_model}")

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List Gemini models")
    parser.add_argument("--all", action="store_true", help="Include non-generative models")
    args = parser.parse_args()

    sys.exit(list_models(show_all=args.all))
