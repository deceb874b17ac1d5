import sys
from pathlib import Path

HERE = Path(__file__).resolve().parent

sys.path.insert(0, str(HERE.parent / "apps" / "matcher" / "config"))
sys.path.insert(0, str(HERE))
