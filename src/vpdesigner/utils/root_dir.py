from pathlib import Path

# Package root (src/vpdesigner); bundled data lives below it
ROOT_DIR = Path(__file__).resolve().parents[1]
