#!/usr/bin/env python3
"""Install script for hearth.

Usage:
    python install.py              # Install into .venv
    python install.py --dev        # Also install the test dependencies
    python install.py --no-browser # Skip the Playwright Chromium download
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)
PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))


def _venv_paths() -> tuple[str, str]:
    bin_dir = "Scripts" if platform.system() == "Windows" else "bin"
    venv_dir = os.path.join(PROJECT_DIR, ".venv")
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    return os.path.join(venv_dir, bin_dir, "pip"), os.path.join(venv_dir, bin_dir, "python")


def _copy_examples() -> None:
    for src, dst in (("config.example.yaml", "config.yaml"), (".env.example", ".env")):
        src_path = os.path.join(PROJECT_DIR, src)
        dst_path = os.path.join(PROJECT_DIR, dst)
        if os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")
        elif os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")


def main() -> None:
    if sys.version_info < MIN_PYTHON:
        sys.exit(f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required.")

    dev = "--dev" in sys.argv
    browser = "--no-browser" not in sys.argv
    pip, python_exe = _venv_paths()

    subprocess.check_call([pip, "install", "--upgrade", "pip"])
    target = ".[dev]" if dev else "."
    print(f"Installing hearth ({target})...")
    subprocess.check_call([pip, "install", "-e", target], cwd=PROJECT_DIR)

    if browser:
        print("Installing Playwright Chromium for the browser tool...")
        subprocess.check_call([python_exe, "-m", "playwright", "install", "chromium"])

    os.makedirs(os.path.join(PROJECT_DIR, "data"), exist_ok=True)
    _copy_examples()

    activate = r".\.venv\Scripts\activate" if platform.system() == "Windows" else "source .venv/bin/activate"
    print()
    print("hearth installed. Next steps:")
    print("  1. Set ANTHROPIC_API_KEY in .env")
    print("  2. Review agents and security.tools in config.yaml")
    print(f"  3. {activate}")
    print("  4. python -m hearth config-check")
    print("  5. python -m hearth start")


if __name__ == "__main__":
    main()
