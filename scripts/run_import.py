"""Run a docimport import from a source checkout."""
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from importer.cli import main


if __name__ == "__main__":
    sys.exit(main())
