#!/usr/bin/env python3
"""
Bootstrap script for pageexport.
Installs the package and the Chromium build Playwright drives.
"""

import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def run_command(cmd, description):
    """Run a command list and report status."""
    print(f"\n📦 {description}...")
    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True, cwd=PROJECT_ROOT)
    except subprocess.CalledProcessError as e:
        print(f"❌ {description} failed")
        if e.stderr:
            print(e.stderr)
        return False
    print(f"✅ {description} completed")
    if result.stdout:
        print(result.stdout)
    return True


def main():
    print("🚀 Setting up pageexport...")

    if sys.version_info < (3, 9):
        print("❌ Python 3.9+ required")
        sys.exit(1)

    target = ".[test]" if "--test" in sys.argv[1:] else "."
    if not run_command(
        [sys.executable, "-m", "pip", "install", "-e", target],
        "Installing pageexport",
    ):
        sys.exit(1)

    # --with-deps pulls the system libraries Chromium needs on bare Linux images
    install_browser = [sys.executable, "-m", "playwright", "install", "chromium"]
    if "--with-deps" in sys.argv[1:]:
        install_browser.append("--with-deps")
    if not run_command(install_browser, "Installing Chromium browser"):
        sys.exit(1)

    print("\n✅ Setup complete! You can now run:")
    print("   pageexport https://example.com out.pdf")
    print("   pageexport page.html out.png --image --js-event")


if __name__ == "__main__":
    main()
