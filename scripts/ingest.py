#!/usr/bin/env python
"""Ingest a document into the knowledge store.

Usage:
    python scripts/ingest.py --file docs/faq.txt --name "FAQ"
    python scripts/ingest.py --file docs/rules.pdf --name "Rules" --url https://example.org/rules.pdf
"""
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docqa.cli import main

if __name__ == "__main__":
    sys.exit(main())
