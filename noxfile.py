import nox

PYTHON_VERSION = "3.11"
SOURCES = ["api", "common", "packages"]


@nox.session(python=PYTHON_VERSION)
def tests(session):
    session.run("poetry", "install", "--extras", "test", external=True)
    session.run("poetry", "run", "pytest", "tests/unit", *session.posargs, external=True)


@nox.session(python=PYTHON_VERSION)
def lint(session):
    session.run("poetry", "install", "--extras", "test", external=True)
    session.run("poetry", "run", "ruff", "check", ".", external=True)


@nox.session(python=PYTHON_VERSION)
def format(session):
    session.run("poetry", "install", "--extras", "test", external=True)
    session.run("poetry", "run", "black", "--check", *SOURCES, "tests", external=True)
    session.run("poetry", "run", "ruff", "check", ".", external=True)


@nox.session(python=PYTHON_VERSION)
def migrations(session):
    """Print the SQL for every migration without a database."""
    session.run("poetry", "install", external=True)
    session.run("poetry", "run", "alembic", "upgrade", "head", "--sql", external=True)
