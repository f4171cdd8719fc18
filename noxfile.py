"""Nox automation configuration for Flora CLI.

Provides automated testing, linting, formatting, and build tasks.
"""

import nox

# Default sessions to run
nox.options.sessions = ["lint", "tests"]
nox.options.reuse_existing_virtualenvs = True


@nox.session(python=["3.8", "3.9", "3.10", "3.11", "3.12"])
def tests(session):
    """Run the test suite."""
    session.install("-e", ".[dev]")
    session.run("pytest", *session.posargs)


@nox.session(python="3.10")
def coverage(session):
    """Run tests with coverage reporting."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        "--cov=floracli",
        "--cov-report=term-missing",
        "--cov-report=html",
        "--cov-report=xml",
        *session.posargs
    )


@nox.session(python="3.10")
def lint(session):
    """Run linters (flake8 and mypy)."""
    session.install("-e", ".[dev]")
    session.run("flake8", "floracli", "tests", "main.py")
    session.run("mypy", "floracli")


@nox.session(python="3.10")
def format(session):
    """Format code with black."""
    session.install("black")
    session.run("black", "floracli", "tests", "main.py", "noxfile.py")


@nox.session(python="3.10")
def format_check(session):
    """Check code formatting with black."""
    session.install("black")
    session.run("black", "--check", "floracli", "tests", "main.py", "noxfile.py")


@nox.session(python="3.10")
def build(session):
    """Build distribution packages."""
    session.install("build", "twine")
    session.run("python", "-m", "build")
    session.run("twine", "check", "dist/*")


@nox.session(python="3.10")
def tests_unit(session):
    """Run unit tests only."""
    session.install("-e", ".[dev]")
    session.run("pytest", "tests/unit", "-v", *session.posargs)


@nox.session(python="3.10")
def tests_integration(session):
    """Run integration tests only."""
    session.install("-e", ".[dev]")
    session.run("pytest", "tests/integration", "-v", *session.posargs)


@nox.session(python="3.10")
def tests_session(session):
    """Run serial transport and provisioning dialog tests only."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        "tests/unit/test_serial_handler.py",
        "tests/unit/test_line_reader.py",
        "tests/unit/test_provisioning_session.py",
        "tests/integration/test_provisioning_integration.py",
        "-v",
        *session.posargs
    )


@nox.session(python="3.10")
def tests_config(session):
    """Run configuration layer tests only."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        "tests/unit/test_config_models.py",
        "tests/unit/test_config_schema.py",
        "tests/unit/test_config_encryption.py",
        "tests/unit/test_config_manager.py",
        "tests/unit/test_config_cli.py",
        "-v",
        *session.posargs
    )


@nox.session(python="3.10")
def ci(session):
    """Run full CI pipeline (tests + coverage + lint)."""
    session.install("-e", ".[dev]")
    session.run(
        "pytest",
        "--cov=floracli",
        "--cov-report=term-missing",
        "--cov-report=xml",
        "--cov-fail-under=80",
        "-v"
    )
    session.run("flake8", "floracli", "tests")
    session.run("mypy", "floracli", "--ignore-missing-imports")


@nox.session(python="3.10")
def clean(session):
    """Clean build artifacts and caches."""
    import shutil
    from pathlib import Path

    patterns = [
        "build",
        "dist",
        "*.egg-info",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".coverage",
        "htmlcov",
        ".nox"
    ]

    for pattern in patterns:
        for path in Path(".").rglob(pattern):
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
                session.log(f"Removed directory: {path}")
            elif path.is_file():
                path.unlink()
                session.log(f"Removed file: {path}")
