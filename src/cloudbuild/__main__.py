"""Allow running cloudbuild as a module: python -m cloudbuild."""

from cloudbuild.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
